"""rerank_qa.retrieval.data_source

Searchable data sources consumed by the rerank-QA advisor.

A data source returns candidate passages for a query string plus an optional
filter expression. The advisor fans out to every configured source, so each
implementation only needs to answer for itself.

Classes
-------
DataSource
    Abstract interface every data source implements.
VectorIndexDataSource
    Data source backed by a LlamaIndex ``VectorStoreIndex``.

Functions
---------
register
    Decorator used to register a data-source builder under a name.
create_data_source
    Construct a data source from a configuration mapping.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from llama_index.core.schema import NodeWithScore

from rerank_qa.common.schemas import Document
from rerank_qa.errors import RetrievalError
from rerank_qa.retrieval.filters import parse_filter_expression

logger = logging.getLogger(__name__)


class DataSource(ABC):
    """Abstract interface for a searchable passage source."""

    @property
    def name(self) -> str:
        """Return a display name used in diagnostics."""
        return type(self).__name__

    @abstractmethod
    def search(
            self,
            query: str,
            filter_expression: str | None = None,
        ) -> list[Document]:
        """Return candidate passages for a query.

        Parameters
        ----------
        query : str
            The user's question, unmodified.
        filter_expression : str or None, optional
            Opaque filter expression forwarded verbatim from the request.

        Returns
        -------
        list[Document]
            Candidate passages in the source's own order.
        """
        raise NotImplementedError

    async def asearch(
            self,
            query: str,
            filter_expression: str | None = None,
        ) -> list[Document]:
        """Asynchronously return candidate passages for a query.

        Notes
        -----
        The default implementation runs :meth:`search` in the event loop's
        default executor.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.search(query, filter_expression))


class VectorIndexDataSource(DataSource):
    """Data source over a LlamaIndex vector index.

    A fresh retriever is built for each search so that per-request metadata
    filters can be applied without mutating shared state.

    Parameters
    ----------
    index : VectorStoreIndex
        Index to search. Anything exposing ``as_retriever(**kwargs)`` works.
    name : str or None, optional
        Display name for diagnostics. Defaults to the class name.
    top_k : int, optional
        Maximum number of passages returned per search. Defaults to ``5``.
    similarity_threshold : float or None, optional
        Minimum retrieval score a passage must reach. Passages without a score
        are kept. Defaults to ``None`` (no cut-off).
    """

    def __init__(
            self,
            index: Any,
            *,
            name: str | None = None,
            top_k: int = 5,
            similarity_threshold: float | None = None,
        ):
        self.index = index
        self._name = name or type(self).__name__
        self.top_k = int(top_k)
        if self.top_k <= 0:
            raise ValueError("'top_k' must be a positive integer.")
        self.similarity_threshold = similarity_threshold

    @property
    def name(self) -> str:
        return self._name

    def _retriever(self, filter_expression: str | None) -> Any:
        filters = parse_filter_expression(filter_expression)
        return self.index.as_retriever(
            similarity_top_k=self.top_k,
            filters=filters,
        )

    def search(
            self,
            query: str,
            filter_expression: str | None = None,
        ) -> list[Document]:
        """Retrieve passages from the index.

        Raises
        ------
        FilterExpressionError
            If ``filter_expression`` cannot be parsed.
        RetrievalError
            If the underlying index fails.
        """
        retriever = self._retriever(filter_expression)
        try:
            nodes = retriever.retrieve(query)
        except Exception as exc:
            raise RetrievalError(f"Data source {self.name!r} failed to search: {exc}") from exc
        return self._to_documents(nodes)

    async def asearch(
            self,
            query: str,
            filter_expression: str | None = None,
        ) -> list[Document]:
        retriever = self._retriever(filter_expression)
        try:
            nodes = await retriever.aretrieve(query)
        except Exception as exc:
            raise RetrievalError(f"Data source {self.name!r} failed to search: {exc}") from exc
        return self._to_documents(nodes)

    def _to_documents(self, nodes: list[NodeWithScore]) -> list[Document]:
        documents = [Document.from_node(node) for node in nodes]
        if self.similarity_threshold is not None:
            documents = [
                doc for doc in documents
                if doc.score is None or doc.score >= self.similarity_threshold
            ]
        logger.debug("Data source %s returned %d passages", self.name, len(documents))
        return documents


_BUILDERS: Dict[str, Callable[..., DataSource]] = {}


def register(name: str):
    """Register a data-source builder under a name.

    Parameters
    ----------
    name : str
        Name under which the builder should be registered.

    Returns
    -------
    Callable
        Decorator that registers the wrapped builder function.
    """
    def _wrap(fn: Callable[..., DataSource]):
        _BUILDERS[name] = fn
        return fn
    return _wrap


def create_data_source(
        config: Mapping[str, Any],
        *,
        name: str | None = None,
        index: Optional[Any] = None,
        base_dir: Path | None = None,
    ) -> DataSource:
    """Create a data source from a configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any]
        Source configuration. The ``type`` key selects the builder
        (defaults to ``"vector_index"``).
    name : str or None, optional
        Display name for the source.
    index : Any, optional
        Pre-built index to wrap instead of loading one from ``persist_dir``.
    base_dir : Path or None, optional
        Directory against which a relative ``persist_dir`` is resolved.

    Returns
    -------
    DataSource
        Instantiated data source.

    Raises
    ------
    ValueError
        If ``type`` does not correspond to a registered builder.
    """
    cfg = dict(config or {})
    kind = str(cfg.pop("type", "vector_index")).lower().strip().replace("-", "_")
    if kind not in _BUILDERS:
        raise ValueError(f"Unknown data source kind: {kind}. Available: {list(_BUILDERS)}")
    return _BUILDERS[kind](name=name, index=index, base_dir=base_dir, **cfg)


@register("vector_index")
def _build_vector_index(
        *,
        name: str | None = None,
        index: Any = None,
        base_dir: Path | None = None,
        persist_dir: str | None = None,
        top_k: int = 5,
        similarity_threshold: float | None = None,
    ) -> DataSource:
    """Build a vector-index data source, loading the index from disk if needed."""
    if index is None:
        if not persist_dir:
            raise ValueError("'persist_dir' is required when no index is supplied.")

        from llama_index.core import StorageContext, load_index_from_storage

        path = Path(persist_dir).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = (base_dir / path).resolve()
        storage_context = StorageContext.from_defaults(persist_dir=str(path))
        index = load_index_from_storage(storage_context)

    return VectorIndexDataSource(
        index,
        name=name,
        top_k=top_k,
        similarity_threshold=similarity_threshold,
    )


__all__ = [
    "DataSource",
    "VectorIndexDataSource",
    "create_data_source",
    "register",
]
