"""rerank_qa.advisors.rerank_qa_advisor

Question-answer advisor that grounds prompts in reranked passages.

Context for the question is retrieved from every configured data source,
reranked with a dedicated relevance model, and filtered by relevance score
before being added to the prompt's user text. The passages used are
published on the final response's metadata.

Classes
-------
RerankAdvisorConfig
    Validated, immutable advisor settings.
RerankQuestionAnswerAdvisor
    The advisor, usable in both single-shot and streamed chains.

Functions
---------
has_finish_reason
    Return ``True`` for the response increment that completes the output.

Notes
-----
The augmentation step blocks: it waits for every data source and for the
reranker. In streamed chains it is moved off the event loop unless
``protect_from_blocking`` is disabled.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import warnings
from concurrent.futures import FIRST_EXCEPTION, Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Sequence

from rerank_qa.advisors.base import (
    CallAroundAdvisor,
    CallAroundAdvisorChain,
    StreamAroundAdvisor,
    StreamAroundAdvisorChain,
)
from rerank_qa.advisors.types import (
    RETRIEVED_DOCUMENTS,
    AdvisedRequest,
    AdvisedResponse,
)
from rerank_qa.common.schemas import Document
from rerank_qa.errors import ConfigurationError, MalformedOverrideError, RerankError
from rerank_qa.retrieval.data_source import DataSource
from rerank_qa.retrieval.reranker import BaseReranker, CohereReranker

logger = logging.getLogger(__name__)

QUESTION_ANSWER_CONTEXT = "question_answer_context"

DEFAULT_USER_TEXT_ADVISE = """\
Context information is below.
---------------------
{{ question_answer_context }}
---------------------
Given the context information above, and not prior knowledge,
answer the question. If you cannot find the answer in the context,
inform the user that you don't have enough information to answer.
"""

DEFAULT_ORDER = 0
DEFAULT_RELEVANCY_THRESHOLD = 0.7
DEFAULT_MODEL = "rerank-english-v3.0"


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


# Left behind by os.path.expandvars when the variable is unset.
_UNEXPANDED_ENV_VAR = re.compile(r"\$(?:\{(\w+)\}|(\w+))")


@dataclass(frozen=True)
class RerankAdvisorConfig:
    """Validated settings for :class:`RerankQuestionAnswerAdvisor`.

    Construction either yields a fully valid object or raises; there is no
    partially valid state.

    Parameters
    ----------
    data_sources : Sequence[DataSource]
        Sources to search. Must not be empty. Stored as a tuple.
    api_key : str
        Credential for the reranking service. Must not be blank or an
        unexpanded environment reference such as ``${COHERE_API_KEY}``.
    model : str, optional
        Reranking model identifier. Defaults to ``"rerank-english-v3.0"``.
    user_text_advise : str, optional
        Template appended to the user's question. It should reference the
        ``question_answer_context`` placeholder.
    relevancy_threshold : float, optional
        Minimum reranked score for a passage to be kept, in ``[0, 1]``.
        Defaults to ``0.7``.
    order : int, optional
        Ordering priority within the advisor chain. Defaults to ``0``.
    protect_from_blocking : bool, optional
        Whether streamed calls run retrieval and reranking off the event loop.
        Defaults to ``True``.

    Raises
    ------
    ConfigurationError
        If any field violates the rules above.
    """
    data_sources: Sequence[DataSource]
    api_key: str
    model: str = DEFAULT_MODEL
    user_text_advise: str = DEFAULT_USER_TEXT_ADVISE
    relevancy_threshold: float = DEFAULT_RELEVANCY_THRESHOLD
    order: int = DEFAULT_ORDER
    protect_from_blocking: bool = True

    def __post_init__(self):
        if not self.data_sources:
            raise ConfigurationError("At least one DataSource must be provided")
        object.__setattr__(self, "data_sources", tuple(self.data_sources))

        if not _has_text(self.api_key):
            raise ConfigurationError("Reranker API key must not be empty")
        unexpanded = _UNEXPANDED_ENV_VAR.fullmatch(self.api_key.strip())
        if unexpanded:
            variable = unexpanded.group(1) or unexpanded.group(2)
            raise ConfigurationError(f"Reranker API key refers to unset environment variable {variable}")
        if not _has_text(self.model):
            raise ConfigurationError("Model must not be empty")
        if not _has_text(self.user_text_advise):
            raise ConfigurationError("UserTextAdvise must not be empty")

        try:
            threshold = float(self.relevancy_threshold)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Relevancy threshold must be a number, got {self.relevancy_threshold!r}"
            ) from exc
        if not 0.0 <= threshold <= 1.0:
            raise ConfigurationError("Relevancy threshold must be between 0 and 1")
        object.__setattr__(self, "relevancy_threshold", threshold)

        try:
            object.__setattr__(self, "order", int(self.order))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Order must be an integer, got {self.order!r}") from exc
        object.__setattr__(self, "protect_from_blocking", bool(self.protect_from_blocking))

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any] | None,
            data_sources: Sequence[DataSource],
        ) -> "RerankAdvisorConfig":
        """Create settings from an ``advisor`` configuration section.

        Parameters
        ----------
        config : Mapping[str, Any] or None
            Section with any of ``api_key``, ``model``, ``user_text_advise``,
            ``relevancy_threshold``, ``order``, ``protect_from_blocking``.
            Unknown keys are ignored with a warning.
        data_sources : Sequence[DataSource]
            Already-built data sources.

        Returns
        -------
        RerankAdvisorConfig
            Validated settings.
        """
        cfg = dict(config or {})
        known = {
            "api_key",
            "model",
            "user_text_advise",
            "relevancy_threshold",
            "order",
            "protect_from_blocking",
        }
        unknown = sorted(set(cfg) - known)
        if unknown:
            warnings.warn(f"Ignoring unknown advisor settings: {', '.join(unknown)}", UserWarning)

        kwargs = {k: cfg[k] for k in known if k in cfg and cfg[k] is not None}
        kwargs.setdefault("api_key", "")
        return cls(data_sources=data_sources, **kwargs)


def has_finish_reason(advised_response: AdvisedResponse) -> bool:
    """Return ``True`` if any result of the response carries a finish reason."""
    response = advised_response.response
    return response is not None and response.has_finish_reason()


class RerankQuestionAnswerAdvisor(CallAroundAdvisor, StreamAroundAdvisor):
    """Ground the user's question in reranked, relevance-filtered passages.

    Parameters
    ----------
    config : RerankAdvisorConfig
        Validated settings. Shared read-only across requests.
    reranker : BaseReranker or None, optional
        Reranker to use. Defaults to a :class:`CohereReranker` built from
        ``config.api_key``.
    executor : Executor or None, optional
        Worker pool used to isolate blocking work in streamed calls. ``None``
        uses the event loop's default executor.

    Notes
    -----
    Per-request overrides are read from the request's advise context:
    ``relevancy_threshold`` replaces the configured threshold and
    ``filter_expression`` is passed to every data source. Neither persists
    beyond the request.
    """

    def __init__(
            self,
            config: RerankAdvisorConfig,
            reranker: BaseReranker | None = None,
            executor: Executor | None = None,
        ):
        if not isinstance(config, RerankAdvisorConfig):
            raise ConfigurationError(
                f"Expected a RerankAdvisorConfig, got {type(config).__name__}"
            )
        self.config = config
        self.reranker = reranker if reranker is not None else CohereReranker(config.api_key)
        self.executor = executor

    @property
    def order(self) -> int:
        return self.config.order

    @property
    def data_sources(self) -> tuple[DataSource, ...]:
        return self.config.data_sources

    def around_call(
            self,
            advised_request: AdvisedRequest,
            chain: CallAroundAdvisorChain,
        ) -> AdvisedResponse:
        """Augment the request, run the rest of the chain, annotate the response."""
        advised_request = self.before(advised_request)
        advised_response = chain.next_around_call(advised_request)
        return self.after(advised_response)

    async def around_stream(
            self,
            advised_request: AdvisedRequest,
            chain: StreamAroundAdvisorChain,
        ) -> AsyncIterator[AdvisedResponse]:
        """Augment the request, then relay the chain's increments.

        Only the increment carrying a finish reason is annotated; every other
        increment is forwarded unchanged and in order.
        """
        if self.config.protect_from_blocking:
            loop = asyncio.get_running_loop()
            advised_request = await loop.run_in_executor(self.executor, self.before, advised_request)
        else:
            advised_request = self.before(advised_request)

        stream = chain.next_around_stream(advised_request)
        try:
            async for advised_response in stream:
                if has_finish_reason(advised_response):
                    advised_response = self.after(advised_response)
                yield advised_response
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def before(self, advised_request: AdvisedRequest) -> AdvisedRequest:
        """Return a new request grounded in reranked passages.

        Raises
        ------
        MalformedOverrideError
            If the per-request threshold override is not a float in ``[0, 1]``.
        RerankError
            If the reranker returns an index outside the submitted list.
        Exception
            Anything raised by a data source or the reranker, unchanged.
        """
        context = advised_request.advise_context
        threshold = self._resolve_threshold(context.relevancy_threshold)
        filter_expression = context.filter_expression
        query = advised_request.user_text

        documents = self._search_all(query, filter_expression)

        logger.debug("Question: %s", query)
        logger.info("Found %d documents across all sources", len(documents))

        relevant_docs = self._filter_relevant(query, documents, threshold)

        logger.info("Filtered to %d relevant documents", len(relevant_docs))

        document_context = os.linesep.join(doc.text for doc in relevant_docs)

        advised_user_params = dict(advised_request.user_params)
        advised_user_params[QUESTION_ANSWER_CONTEXT] = document_context

        advised_user_text = query + os.linesep + self.config.user_text_advise

        return advised_request.replace(
            user_text=advised_user_text,
            user_params=advised_user_params,
            advise_context=context.replace(retrieved_documents=relevant_docs),
        )

    def after(self, advised_response: AdvisedResponse) -> AdvisedResponse:
        """Publish the retained passages on the response metadata."""
        retrieved = advised_response.advise_context.retrieved_documents
        response = advised_response.response.with_metadata(
            RETRIEVED_DOCUMENTS,
            retrieved if retrieved is not None else (),
        )
        return AdvisedResponse(response=response, advise_context=advised_response.advise_context)

    def _resolve_threshold(self, override: Any) -> float:
        if override is None:
            return self.config.relevancy_threshold

        if isinstance(override, bool):
            raise MalformedOverrideError(f"Relevancy threshold override must be a float, got {override!r}")
        try:
            threshold = float(override.strip() if isinstance(override, str) else override)
        except (TypeError, ValueError) as exc:
            raise MalformedOverrideError(
                f"Relevancy threshold override must be a float, got {override!r}"
            ) from exc
        if not 0.0 <= threshold <= 1.0:
            raise MalformedOverrideError(
                f"Relevancy threshold override must be between 0 and 1, got {threshold}"
            )
        return threshold

    def _search_all(self, query: str, filter_expression: str | None) -> list[Document]:
        """Search every data source concurrently and join results in source order."""
        sources = self.config.data_sources
        pool = ThreadPoolExecutor(max_workers=len(sources), thread_name_prefix="rerank-qa-search")
        try:
            futures = [pool.submit(source.search, query, filter_expression) for source in sources]
            wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future.done() and future.exception() is not None:
                    pending = sum(not f.done() for f in futures)
                    logger.warning("Data source search failed, abandoning %d pending searches", pending)
                    future.result()
            # Joined in submission order so the result does not depend on timing.
            results = [future.result() for future in futures]
        except BaseException:
            # Pending searches are not waited for.
            pool.shutdown(wait=False, cancel_futures=True)
            raise
        pool.shutdown()

        documents: list[Document] = []
        for source_docs in results:
            documents.extend(source_docs or [])
        return documents

    def _filter_relevant(
            self,
            query: str,
            documents: list[Document],
            threshold: float,
        ) -> tuple[Document, ...]:
        if not documents:
            return ()

        results = self.reranker.rerank(
            query,
            [doc.text for doc in documents],
            self.config.model,
        )

        relevant: list[Document] = []
        for result in results:
            if not 0 <= result.index < len(documents):
                raise RerankError(
                    f"Reranker returned index {result.index} for {len(documents)} documents"
                )
            if result.relevance_score < threshold:
                continue
            relevant.append(documents[result.index])
        return tuple(relevant)


__all__ = [
    "RerankAdvisorConfig",
    "RerankQuestionAnswerAdvisor",
    "has_finish_reason",
    "QUESTION_ANSWER_CONTEXT",
    "DEFAULT_USER_TEXT_ADVISE",
    "DEFAULT_RELEVANCY_THRESHOLD",
    "DEFAULT_MODEL",
    "DEFAULT_ORDER",
]
