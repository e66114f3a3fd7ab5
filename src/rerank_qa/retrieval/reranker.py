"""rerank_qa.retrieval.reranker

Reranker abstractions and implementations.

A reranker scores a list of passage texts against a query with a dedicated
relevance model and returns verdicts ordered most relevant first.

This module defines:
- an abstract reranker interface
- a Cohere reranker speaking the v2 rerank HTTP API
- a small reranker factory for configuration-driven construction
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

import requests

from rerank_qa.common.schemas import RerankResult
from rerank_qa.errors import ConfigurationError, RerankError


class BaseReranker(ABC):
    """Abstract interface for relevance rerankers."""

    @abstractmethod
    def rerank(
            self,
            query: str,
            documents: Sequence[str],
            model: str,
        ) -> list[RerankResult]:
        """Score ``documents`` against ``query``.

        Parameters
        ----------
        query : str
            Query text.
        documents : Sequence[str]
            Passage texts, in submission order.
        model : str
            Reranking model identifier.

        Returns
        -------
        list[RerankResult]
            One verdict per scored passage, most relevant first. ``index``
            refers to a position in ``documents``.
        """
        raise NotImplementedError


class CohereReranker(BaseReranker):
    """Reranker backed by Cohere's rerank endpoint.

    Parameters
    ----------
    api_key : str
        Cohere API key. Must not be blank.
    api_base : str, optional
        Base URL of the API. Defaults to ``"https://api.cohere.com"``.
    timeout : float, optional
        Request timeout in seconds. Defaults to ``30.0``.
    client_name : str, optional
        Value sent in the ``X-Client-Name`` header.
    session : requests.Session or None, optional
        Session to reuse. A new one is created when omitted.
    """

    DEFAULT_API_BASE = "https://api.cohere.com"

    def __init__(
            self,
            api_key: str,
            *,
            api_base: str = DEFAULT_API_BASE,
            timeout: float = 30.0,
            client_name: str = "rerank-qa",
            session: requests.Session | None = None,
        ):
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError("Cohere API key must not be empty")
        self.api_base = (api_base or self.DEFAULT_API_BASE).rstrip("/")
        self.timeout = float(timeout)
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "X-Client-Name": client_name,
                "Accept": "application/json",
            }
        )

    @property
    def url(self) -> str:
        """Return the rerank endpoint URL."""
        return f"{self.api_base}/v2/rerank"

    def rerank(
            self,
            query: str,
            documents: Sequence[str],
            model: str,
        ) -> list[RerankResult]:
        """Score passages with one batched API call.

        Raises
        ------
        RerankError
            If the HTTP call fails or the response cannot be parsed.
        """
        if not documents:
            return []

        payload = {
            "model": model,
            "query": query,
            "documents": list(documents),
        }

        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise RerankError(f"Cohere rerank call failed: {exc}") from exc
        except ValueError as exc:
            raise RerankError(f"Cohere rerank returned invalid JSON: {exc}") from exc

        return self._parse_results(data)

    @staticmethod
    def _parse_results(data: Any) -> list[RerankResult]:
        if not isinstance(data, Mapping) or not isinstance(data.get("results"), list):
            raise RerankError("Cohere rerank response is missing a 'results' list.")

        results: list[RerankResult] = []
        for i, item in enumerate(data["results"]):
            try:
                results.append(
                    RerankResult(
                        index=int(item["index"]),
                        relevance_score=float(item["relevance_score"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise RerankError(f"Malformed rerank result #{i}: {item!r}") from exc
        return results


def create_reranker(
        *,
        config: Mapping[str, Any] | None,
        api_key: str,
    ) -> BaseReranker:
    """Create a reranker from configuration.

    Parameters
    ----------
    config : Mapping[str, Any] or None
        Reranker section. ``type`` selects the implementation (defaults to
        ``"cohere"``); remaining keys are forwarded to its constructor.
    api_key : str
        Credential for the reranking service.

    Returns
    -------
    BaseReranker
        Configured reranker.

    Raises
    ------
    ValueError
        If ``type`` names an unsupported reranker.
    """
    cfg = dict(config or {})
    kind = str(cfg.pop("type", "cohere")).lower().strip()

    if kind == "cohere":
        return CohereReranker(api_key, **cfg)

    raise ValueError(f"Unsupported rerank type {kind!r}. Supported rerankers: ['cohere'].")


__all__ = [
    "BaseReranker",
    "CohereReranker",
    "create_reranker",
]
