"""rerank_qa.common.schemas

Core data schemas shared across the advisor pipeline.

These lightweight dataclasses describe retrieved passages, reranker output,
and chat-model responses. They are passed between data sources, rerankers,
advisors, and the terminal model call.

Classes
-------
Document
    A retrieved passage with its text body and arbitrary metadata.
RerankResult
    One reranker verdict: an index into the submitted list plus a score.
Generation
    One result entry of a model response.
ChatResponse
    A (possibly partial) model response with response-level metadata.

Notes
-----
``metadata`` is intentionally untyped (``dict[str, Any]``) to allow arbitrary
key-value pairs (e.g., source, page number, author). Downstream code should
treat missing keys defensively.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping
from uuid import uuid4


@dataclass
class Document:
    """A retrieved passage.

    Attributes
    ----------
    text : str
        Text body of the passage. This is what gets reranked and injected.
    metadata : Dict[str, Any]
        Arbitrary metadata carried over from the data source. Defaults to an
        empty dict.
    id : str
        Unique identifier for the passage. Defaults to a random UUID4 string.
    score : float or None
        Score assigned by the originating data source, if any. This is not the
        reranker's relevance score.
    """
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    score: float | None = None

    @classmethod
    def from_node(cls, item: Any) -> "Document":
        """Build a :class:`Document` from a LlamaIndex node.

        Parameters
        ----------
        item : NodeWithScore or BaseNode
            Retrieval output. ``NodeWithScore`` wrappers are unwrapped and
            their score kept.

        Returns
        -------
        Document
            Passage carrying the node's content, metadata and identifier.
        """
        node = getattr(item, "node", item)
        score = getattr(item, "score", None)

        if hasattr(node, "get_content"):
            text = node.get_content()
        else:
            text = getattr(node, "text", "")

        metadata = getattr(node, "metadata", None)
        node_id = None
        for attr in ("node_id", "id_", "id"):
            value = getattr(node, attr, None)
            if isinstance(value, str) and value:
                node_id = value
                break

        return cls(
            text=text if isinstance(text, str) else str(text),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
            id=node_id or str(uuid4()),
            score=float(score) if isinstance(score, (int, float)) else None,
        )


@dataclass(frozen=True)
class RerankResult:
    """Relevance verdict for one submitted passage.

    Attributes
    ----------
    index : int
        Position of the passage in the list submitted to the reranker.
    relevance_score : float
        Normalised relevance score in ``[0, 1]``; higher is more relevant.
    """
    index: int
    relevance_score: float


@dataclass(frozen=True)
class Generation:
    """One result entry of a model response.

    Attributes
    ----------
    text : str
        Generated text (a full answer, or one increment when streaming).
    finish_reason : str or None
        Provider finish reason. Only set on the entry that completes the
        model's output.
    metadata : Mapping[str, Any]
        Provider-specific metadata for this entry.
    """
    text: str = ""
    finish_reason: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatResponse:
    """A model response, or one increment of a streamed response.

    Attributes
    ----------
    results : tuple[Generation, ...]
        Result entries, one per generated choice.
    metadata : Mapping[str, Any]
        Response-level metadata. Advisors publish their outputs here.
    """
    results: tuple[Generation, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "results", tuple(self.results))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def result(self) -> Generation | None:
        """Return the first result entry, or ``None`` if there is none."""
        return self.results[0] if self.results else None

    @property
    def text(self) -> str:
        """Return the text of the first result entry."""
        result = self.result
        return result.text if result is not None else ""

    def has_finish_reason(self) -> bool:
        """Return ``True`` if any result entry carries a non-empty finish reason."""
        return any(
            result is not None and isinstance(result.finish_reason, str) and result.finish_reason.strip()
            for result in self.results
        )

    def with_metadata(self, key: str, value: Any) -> "ChatResponse":
        """Return a copy of this response with ``key`` set in its metadata."""
        metadata = dict(self.metadata)
        metadata[key] = value
        return replace(self, metadata=metadata)
