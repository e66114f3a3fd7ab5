"""rerank_qa.advisors.chain

Default advisor chain.

The chain holds the advisors of one request sorted by ``order`` (lower runs
earlier; ties keep registration order). Each hop hands the current advisor a
chain positioned just after it, so advisors never share a cursor and the
same chain can serve concurrent requests.

Classes
-------
DefaultAroundAdvisorChain
    Immutable chain usable for single-shot and streamed calls.
"""

from __future__ import annotations

from typing import AsyncIterator, Iterable, Sequence

from rerank_qa.advisors.base import CallAroundAdvisor, StreamAroundAdvisor
from rerank_qa.advisors.types import AdvisedRequest, AdvisedResponse


class DefaultAroundAdvisorChain:
    """Advisor chain over a fixed, ordered list of advisors.

    Parameters
    ----------
    advisors : Iterable
        Advisors to run. They are sorted by ``order``; the last one must
        produce a response without calling further (the terminal model call).
    """

    def __init__(self, advisors: Iterable, *, _position: int = 0, _sorted: bool = False):
        advisors = tuple(advisors)
        if not _sorted:
            advisors = tuple(sorted(advisors, key=lambda advisor: advisor.order))
        self._advisors: tuple = advisors
        self._position = _position

    @property
    def advisors(self) -> Sequence:
        """Return the advisors in execution order."""
        return self._advisors

    def _next_of(self, kind: type, label: str):
        for position in range(self._position, len(self._advisors)):
            advisor = self._advisors[position]
            if isinstance(advisor, kind):
                return advisor, DefaultAroundAdvisorChain(self._advisors, _position=position + 1, _sorted=True)
        raise RuntimeError(f"No {label} available to execute")

    def next_around_call(self, advised_request: AdvisedRequest) -> AdvisedResponse:
        """Run the next call advisor with the rest of the chain behind it.

        Raises
        ------
        RuntimeError
            If no call advisor remains.
        """
        advisor, rest = self._next_of(CallAroundAdvisor, "CallAroundAdvisor")
        return advisor.around_call(advised_request, rest)

    def next_around_stream(self, advised_request: AdvisedRequest) -> AsyncIterator[AdvisedResponse]:
        """Run the next stream advisor with the rest of the chain behind it.

        Raises
        ------
        RuntimeError
            If no stream advisor remains.
        """
        advisor, rest = self._next_of(StreamAroundAdvisor, "StreamAroundAdvisor")
        return advisor.around_stream(advised_request, rest)


__all__ = ["DefaultAroundAdvisorChain"]
