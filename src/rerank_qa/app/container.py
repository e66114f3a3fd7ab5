"""rerank_qa.app.container

Composition root for the advisor pipeline.

This module is the single place where concrete implementations are wired
together from configuration (data sources, reranker, advisor settings, chat
model, and the advised chat pipeline). Components are constructed lazily and
cached on first access to avoid repeated expensive initialisation.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

- The embedding model and vector index behind each data source are external.
  Hosts that build their own indexes pass ready data sources to
  :func:`build_container`; otherwise each source is loaded from its
  configured ``persist_dir``.

Examples
--------
>>> from rerank_qa.config import GlobalConfig
>>> from rerank_qa.app.container import build_container
>>> cfg = GlobalConfig.load("config.yaml")
>>> c = build_container(cfg)
>>> answer = c.pipeline.call("my question")
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Mapping, Sequence


@dataclass(frozen=True)
class RerankQAContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`rerank_qa.config.GlobalConfig`).
    prebuilt_data_sources : Sequence or None
        Data sources supplied by the host. When set, ``config.data_sources``
        is not read.
    """

    config: Any
    prebuilt_data_sources: Sequence | None = None

    @cached_property
    def data_sources(self) -> tuple:
        """Return the data sources searched by the advisor.

        Returns
        -------
        tuple[DataSource, ...]
            Host-supplied sources, or sources built from ``config.data_sources``.
        """
        if self.prebuilt_data_sources is not None:
            return tuple(self.prebuilt_data_sources)

        from rerank_qa.retrieval.data_source import create_data_source

        base_dir = getattr(self.config, "base_dir", None)
        sources = _as_mapping(self.config.data_sources)
        return tuple(
            create_data_source(_as_mapping(source_cfg), name=name, base_dir=base_dir)
            for name, source_cfg in sources.items()
        )

    @cached_property
    def advisor_config(self) -> Any:
        """Return validated advisor settings.

        Returns
        -------
        RerankAdvisorConfig
            Settings built from ``config.advisor`` and :attr:`data_sources`.

        Raises
        ------
        ConfigurationError
            If the settings are invalid.
        """
        from rerank_qa.advisors.rerank_qa_advisor import RerankAdvisorConfig

        section = _as_mapping(getattr(self.config, "advisor", {}) or {})
        return RerankAdvisorConfig.from_config_dict(section, self.data_sources)

    @cached_property
    def reranker(self) -> Any:
        """Return the reranker client.

        Returns
        -------
        BaseReranker
            Reranker built from ``config.reranker`` with the advisor's API key.
        """
        from rerank_qa.retrieval.reranker import create_reranker

        section = _as_mapping(getattr(self.config, "reranker", {}) or {})
        return create_reranker(config=section, api_key=self.advisor_config.api_key)

    @cached_property
    def advisor(self) -> Any:
        """Return the rerank-QA advisor.

        Returns
        -------
        RerankQuestionAnswerAdvisor
            Advisor sharing :attr:`advisor_config` and :attr:`reranker`.
        """
        from rerank_qa.advisors.rerank_qa_advisor import RerankQuestionAnswerAdvisor

        return RerankQuestionAnswerAdvisor(self.advisor_config, reranker=self.reranker)

    @cached_property
    def chat_model(self) -> Any:
        """Return the chat model used for the final call.

        Returns
        -------
        BaseChatModel
            Configured chat model instance.
        """
        from rerank_qa.generation.chat_model import create_chat_model

        section = _as_mapping(self.config.chat_model)
        return create_chat_model(dict(section))

    @cached_property
    def prompt_renderer(self) -> Any:
        """Return the prompt renderer used by the terminal advisor."""
        from rerank_qa.generation.prompt_renderer import PromptRenderer

        return PromptRenderer()

    @cached_property
    def pipeline(self) -> Any:
        """Return the fully wired advised chat pipeline.

        Returns
        -------
        AdvisedChatPipeline
            Pipeline running :attr:`advisor` ahead of :attr:`chat_model`.
        """
        from rerank_qa.pipelines.chat_pipeline import AdvisedChatPipeline

        return AdvisedChatPipeline(
            chat_model=self.chat_model,
            advisors=[self.advisor],
            prompt_renderer=self.prompt_renderer,
            system_text=getattr(self.config, "system_text", None),
        )


def build_container(config: Any, data_sources: Sequence | None = None) -> RerankQAContainer:
    """Create a :class:`~rerank_qa.app.container.RerankQAContainer`.

    This function is intentionally small so it can serve as a single entry point
    for services, CLI scripts, and tests.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`rerank_qa.config.GlobalConfig`).
    data_sources : Sequence or None, optional
        Ready data sources to use instead of building them from configuration.

    Returns
    -------
    RerankQAContainer
        Container instance with cached component accessors.
    """

    return RerankQAContainer(
        config=config,
        prebuilt_data_sources=tuple(data_sources) if data_sources is not None else None,
    )

def _as_mapping(obj: Any) -> Mapping[str, Any]:
    """Coerce an object into a mapping.

    Parameters
    ----------
    obj : Any
        Object to interpret as a mapping. If ``obj`` is already a mapping it is
        returned as-is. If it has a ``__dict__``, that dictionary is returned.

    Returns
    -------
    Mapping[str, Any]
        A dictionary-like view of ``obj``.

    Raises
    ------
    TypeError
        If ``obj`` cannot be interpreted as a mapping.
    """
    if isinstance(obj, Mapping):
        return obj

    if hasattr(obj, "__dict__"):
        return dict(vars(obj))

    raise TypeError(f"Expected mapping type but got {type(obj)}")


__all__ = ["RerankQAContainer", "build_container"]
