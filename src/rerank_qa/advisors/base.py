"""rerank_qa.advisors.base

Advisor and advisor-chain interfaces.

An advisor wraps the rest of a chat pipeline: it may rewrite the request,
hand it on to the next stage, and decorate the response on the way back. A
chain is the "rest of the pipeline" handle an advisor is given.

Classes
-------
CallAroundAdvisor
    Advisor taking part in single-shot calls.
StreamAroundAdvisor
    Advisor taking part in streamed calls.
CallAroundAdvisorChain
    Protocol for the single-shot "next stage" handle.
StreamAroundAdvisorChain
    Protocol for the streaming "next stage" handle.

Attributes
----------
HIGHEST_PRECEDENCE : int
    Smallest order value; advisors with it run first.
LOWEST_PRECEDENCE : int
    Largest order value; reserved for the terminal model call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Protocol

from rerank_qa.advisors.types import AdvisedRequest, AdvisedResponse

HIGHEST_PRECEDENCE = -(2 ** 31)
LOWEST_PRECEDENCE = 2 ** 31 - 1


class CallAroundAdvisorChain(Protocol):
    """Handle to the remaining stages of a single-shot call."""

    def next_around_call(self, advised_request: AdvisedRequest) -> AdvisedResponse:
        """Run the remaining stages and return their response."""
        ...


class StreamAroundAdvisorChain(Protocol):
    """Handle to the remaining stages of a streamed call."""

    def next_around_stream(self, advised_request: AdvisedRequest) -> AsyncIterator[AdvisedResponse]:
        """Run the remaining stages and return their increments."""
        ...


class _Advisor(ABC):

    @property
    def name(self) -> str:
        """Return the advisor's name, used for diagnostics."""
        return type(self).__name__

    @property
    @abstractmethod
    def order(self) -> int:
        """Return the ordering priority. Lower values run earlier."""
        raise NotImplementedError


class CallAroundAdvisor(_Advisor):
    """Advisor that wraps single-shot calls."""

    @abstractmethod
    def around_call(
            self,
            advised_request: AdvisedRequest,
            chain: CallAroundAdvisorChain,
        ) -> AdvisedResponse:
        """Wrap the rest of the chain for one call."""
        raise NotImplementedError


class StreamAroundAdvisor(_Advisor):
    """Advisor that wraps streamed calls."""

    @abstractmethod
    def around_stream(
            self,
            advised_request: AdvisedRequest,
            chain: StreamAroundAdvisorChain,
        ) -> AsyncIterator[AdvisedResponse]:
        """Wrap the rest of the chain for one streamed call."""
        raise NotImplementedError


__all__ = [
    "CallAroundAdvisor",
    "StreamAroundAdvisor",
    "CallAroundAdvisorChain",
    "StreamAroundAdvisorChain",
    "HIGHEST_PRECEDENCE",
    "LOWEST_PRECEDENCE",
]
