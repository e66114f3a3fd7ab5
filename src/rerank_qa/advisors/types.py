"""rerank_qa.advisors.types

Request, response, and per-request context values threaded through an
advisor chain.

All three are immutable. Advisors never modify a value in place; they build a
new one with :meth:`AdvisedRequest.replace` or
:meth:`AdviseContext.replace` and hand that to the next stage.

Classes
-------
AdviseContext
    Typed per-request side channel for overrides and advisor outputs.
AdvisedRequest
    The request as seen by advisors: user/system text plus template params.
AdvisedResponse
    A model response paired with the context that produced it.

Attributes
----------
RETRIEVED_DOCUMENTS : str
    Key under which retained passages are published.
FILTER_EXPRESSION : str
    Key of the per-request filter-expression override.
RELEVANCY_THRESHOLD_PARAM : str
    Key of the per-request relevancy-threshold override.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from rerank_qa.common.schemas import ChatResponse, Document

RETRIEVED_DOCUMENTS = "qa_retrieved_documents"
FILTER_EXPRESSION = "qa_filter_expression"
RELEVANCY_THRESHOLD_PARAM = "relevancy_threshold"

_KEYED_FIELDS = {
    RELEVANCY_THRESHOLD_PARAM: "relevancy_threshold",
    FILTER_EXPRESSION: "filter_expression",
    RETRIEVED_DOCUMENTS: "retrieved_documents",
}


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class AdviseContext:
    """Per-request side channel.

    Attributes
    ----------
    relevancy_threshold : str or float or None
        Override of the configured relevancy threshold, as received. Parsed
        by the advisor that consumes it.
    filter_expression : str or None
        Filter expression forwarded verbatim to every data source.
    retrieved_documents : tuple[Document, ...] or None
        Passages retained by the rerank-QA advisor. ``None`` until that
        advisor has run.
    extras : Mapping[str, Any]
        State owned by other advisors.
    """
    relevancy_threshold: str | float | None = None
    filter_expression: str | None = None
    retrieved_documents: tuple[Document, ...] | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "extras", _freeze(self.extras))
        if self.retrieved_documents is not None:
            object.__setattr__(self, "retrieved_documents", tuple(self.retrieved_documents))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "AdviseContext":
        """Build a context from a plain mapping.

        The well-known keys (:data:`RELEVANCY_THRESHOLD_PARAM`,
        :data:`FILTER_EXPRESSION`, :data:`RETRIEVED_DOCUMENTS`) populate the
        typed fields; every other key is kept in :attr:`extras`.
        """
        if isinstance(mapping, AdviseContext):
            return mapping

        typed: dict[str, Any] = {}
        extras: dict[str, Any] = {}
        for key, value in (mapping or {}).items():
            if key in _KEYED_FIELDS:
                typed[_KEYED_FIELDS[key]] = value
            else:
                extras[key] = value

        filter_expression = typed.get("filter_expression")
        if filter_expression is not None:
            typed["filter_expression"] = str(filter_expression)

        return cls(extras=extras, **typed)

    def as_dict(self) -> dict[str, Any]:
        """Render the context as a plain mapping keyed like :meth:`from_mapping`."""
        out = dict(self.extras)
        for key, attr in _KEYED_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        return out

    def replace(self, **changes: Any) -> "AdviseContext":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def with_extra(self, key: str, value: Any) -> "AdviseContext":
        """Return a copy with ``key`` set in :attr:`extras`."""
        extras = dict(self.extras)
        extras[key] = value
        return replace(self, extras=extras)


@dataclass(frozen=True)
class AdvisedRequest:
    """A chat request as seen by advisors.

    Attributes
    ----------
    user_text : str
        User message text; may contain Jinja2 placeholders.
    user_params : Mapping[str, Any]
        Values for the placeholders in ``user_text``.
    system_text : str or None
        Optional system message text.
    system_params : Mapping[str, Any]
        Values for the placeholders in ``system_text``.
    advise_context : AdviseContext
        Per-request side channel.
    """
    user_text: str
    user_params: Mapping[str, Any] = field(default_factory=dict)
    system_text: str | None = None
    system_params: Mapping[str, Any] = field(default_factory=dict)
    advise_context: AdviseContext = field(default_factory=AdviseContext)

    def __post_init__(self):
        object.__setattr__(self, "user_params", _freeze(self.user_params))
        object.__setattr__(self, "system_params", _freeze(self.system_params))
        if not isinstance(self.advise_context, AdviseContext):
            object.__setattr__(self, "advise_context", AdviseContext.from_mapping(self.advise_context))

    def replace(self, **changes: Any) -> "AdvisedRequest":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class AdvisedResponse:
    """A model response paired with its request's context.

    Attributes
    ----------
    response : ChatResponse
        The model's response, or one streamed increment of it.
    advise_context : AdviseContext
        The context threaded through from the request.
    """
    response: ChatResponse
    advise_context: AdviseContext = field(default_factory=AdviseContext)


__all__ = [
    "AdviseContext",
    "AdvisedRequest",
    "AdvisedResponse",
    "RETRIEVED_DOCUMENTS",
    "FILTER_EXPRESSION",
    "RELEVANCY_THRESHOLD_PARAM",
]
