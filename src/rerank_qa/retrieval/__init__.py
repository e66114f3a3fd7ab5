"""
Retrieval layer of the advisor pipeline.

This package covers the collaborators the rerank-QA advisor consumes: the
searchable data sources that produce candidate passages, the filter
expression parser they share, and the relevance rerankers.

Submodules
----------
data_source
    Data-source interface and the LlamaIndex vector-index implementation.
filters
    Portable filter-expression parser producing LlamaIndex metadata filters.
reranker
    Reranker interface and the Cohere implementation.

Re-exports
----------
DataSource
    Interface for searchable passage sources.
VectorIndexDataSource
    Data source backed by a vector index.
BaseReranker
    Interface for relevance rerankers.
CohereReranker
    Reranker speaking Cohere's rerank API.
"""

from .data_source import DataSource, VectorIndexDataSource, create_data_source
from .filters import parse_filter_expression
from .reranker import BaseReranker, CohereReranker, create_reranker

__all__ = [
    "DataSource",
    "VectorIndexDataSource",
    "create_data_source",
    "parse_filter_expression",
    "BaseReranker",
    "CohereReranker",
    "create_reranker",
]
