"""
Common building blocks shared across the advisor stack.

This package provides the small value types (passages, rerank verdicts and
model responses) imported by the retrieval, generation, and advisor layers.

Classes
-------
Document
    A retrieved passage with metadata.
RerankResult
    Reranker verdict for one passage.
Generation
    One result entry of a model response.
ChatResponse
    Model response (or streamed increment) with response-level metadata.

Attributes
----------
DocId : TypeAlias
    Type alias for passage identifiers.

See Also
--------
rerank_qa.common.schemas
    Defines the classes re-exported here.
"""
from __future__ import annotations
from typing import TypeAlias

from .schemas import (
    ChatResponse,
    Document,
    Generation,
    RerankResult,
)

DocId: TypeAlias = str

__all__ = [
    "ChatResponse",
    "Document",
    "Generation",
    "RerankResult",
    "DocId",
]
