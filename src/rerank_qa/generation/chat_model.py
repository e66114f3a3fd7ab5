"""rerank_qa.generation.chat_model

Unified interface and factory for chat-model backends.

This module defines a small, provider-agnostic abstraction for the terminal
model call of an advisor chain, and a concrete implementation backed by
LangChain's OpenAI-compatible chat wrapper. A factory function is provided to
instantiate the appropriate implementation from a configuration mapping.

Classes
-------
BaseChatModel
    Abstract interface used by the terminal advisor.
OpenAIChatModel
    Chat completions using an OpenAI-compatible HTTP API via LangChain.

Functions
---------
create_chat_model
    Construct a chat model from a configuration mapping.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Mapping, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from rerank_qa.common.schemas import ChatResponse, Generation


def _to_langchain_messages(messages: Sequence[Mapping[str, str]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        elif role == "user":
            converted.append(HumanMessage(content=content))
        else:
            raise ValueError(f"Unsupported message role: {role!r}")
    return converted


def _content_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return "" if content is None else str(content)


def _to_chat_response(message: Any) -> ChatResponse:
    response_metadata = dict(getattr(message, "response_metadata", None) or {})
    finish_reason = response_metadata.get("finish_reason")
    generation = Generation(
        text=_content_text(getattr(message, "content", "")),
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        metadata=response_metadata,
    )

    metadata: dict[str, Any] = {}
    model_name = response_metadata.get("model_name")
    if model_name:
        metadata["model"] = model_name
    usage = getattr(message, "usage_metadata", None)
    if usage:
        metadata["usage"] = dict(usage)

    return ChatResponse(results=(generation,), metadata=metadata)


class BaseChatModel(ABC):
    """Abstract interface for chat-model backends.

    Concrete implementations wrap provider-specific clients and expose the
    single-shot and streamed calls used by the terminal advisor.
    """

    @classmethod
    @abstractmethod
    def from_config_dict(cls, config: dict) -> "BaseChatModel":
        """Create a chat model from a configuration mapping.

        Parameters
        ----------
        config : dict
            Configuration parameters for the concrete implementation.

        Returns
        -------
        BaseChatModel
            An initialised chat model.
        """
        pass

    @abstractmethod
    def call(self, messages: Sequence[Mapping[str, str]]) -> ChatResponse:
        """Run one blocking chat completion.

        Parameters
        ----------
        messages : Sequence[Mapping[str, str]]
            Role/content messages, as produced by
            :meth:`rerank_qa.generation.prompt_renderer.PromptRenderer.render`.

        Returns
        -------
        ChatResponse
            The complete response.
        """
        pass

    @abstractmethod
    def astream(self, messages: Sequence[Mapping[str, str]]) -> AsyncIterator[ChatResponse]:
        """Stream a chat completion.

        Parameters
        ----------
        messages : Sequence[Mapping[str, str]]
            Role/content messages.

        Returns
        -------
        AsyncIterator[ChatResponse]
            Response increments in generation order. The last increment
            carries the finish reason.
        """
        pass


class OpenAIChatModel(BaseChatModel):
    """Chat model using an OpenAI-compatible API.

    This implementation wraps :class:`langchain_openai.ChatOpenAI`.

    Parameters
    ----------
    model_name : str
        Model identifier (e.g., ``"gpt-4o-mini"`` or a local model name).
    api_base : str or None, optional
        Base URL for the OpenAI-compatible API endpoint. ``None`` uses the
        client default.
    api_key : str or None, optional
        API key value. ``None`` lets the client read ``OPENAI_API_KEY``.
    **model_kwargs : Any
        Additional keyword arguments forwarded to ``ChatOpenAI`` (e.g.,
        ``temperature``, ``max_tokens``).
    """

    def __init__(
        self,
        model_name: str,
        api_base: str | None = None,
        api_key: str | None = None,
        **model_kwargs: Any,
    ):
        if not model_name:
            raise ValueError("OpenAIChatModel requires a 'model_name'.")

        self.api_base = api_base

        sig = inspect.signature(ChatOpenAI)
        init_kwargs: dict[str, Any] = dict(model_kwargs)

        if "model" in sig.parameters:
            init_kwargs["model"] = model_name
        else:
            init_kwargs["model_name"] = model_name

        if api_base:
            if "base_url" in sig.parameters:
                init_kwargs["base_url"] = api_base
            else:
                init_kwargs["openai_api_base"] = api_base

        if api_key is not None:
            if "api_key" in sig.parameters:
                init_kwargs["api_key"] = api_key
            else:
                init_kwargs["openai_api_key"] = api_key

        self.llm = ChatOpenAI(**init_kwargs)

    @classmethod
    def from_config_dict(cls, config: dict) -> "OpenAIChatModel":
        """Create an :class:`OpenAIChatModel` from a mapping.

        The mapping is expected to contain ``model_name`` plus optional
        ``api_base``, ``api_key`` and ``model_kwargs``.
        """
        model_name = config.get('model_name') or config.get('model')
        api_base = config.get('api_base')
        model_kwargs = config.get('model_kwargs', {}) or {}
        api_key = config.get('api_key', None)
        return cls(
            model_name=model_name,
            api_base=api_base,
            api_key=api_key,
            **model_kwargs,
        )

    def call(self, messages: Sequence[Mapping[str, str]]) -> ChatResponse:
        message = self.llm.invoke(_to_langchain_messages(messages))
        return _to_chat_response(message)

    async def astream(self, messages: Sequence[Mapping[str, str]]) -> AsyncIterator[ChatResponse]:
        async for chunk in self.llm.astream(_to_langchain_messages(messages)):
            yield _to_chat_response(chunk)


def _normalize_kind(kind: Any) -> str:
    return str(kind or "").strip().lower().replace("-", "_").replace(" ", "_")


def create_chat_model(config: Mapping[str, Any]) -> BaseChatModel:
    """Create a chat model from a configuration mapping.

    The implementation is selected by the ``type`` (or ``kind`` /
    ``provider``) field.

    Parameters
    ----------
    config : Mapping[str, Any]
        Configuration mapping used to construct the chat model.

    Returns
    -------
    BaseChatModel
        An initialised chat model.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator is missing or names an unsupported backend.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_chat_model expected a mapping/dict, got {type(config)}")

    kind_raw = config.get("type") or config.get("kind") or config.get("provider")
    kind = _normalize_kind(kind_raw)
    if not kind:
        raise ValueError(
            "Chat model config is missing a discriminator field (type/kind/provider). "
            "Add e.g. type: openai_chat."
        )

    registry: dict[str, type[BaseChatModel]] = {
        "openai_chat": OpenAIChatModel,
        "openai": OpenAIChatModel,
        "openai_like": OpenAIChatModel,
        "chat_openai": OpenAIChatModel,
    }

    cls = registry.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown chat model kind '{kind_raw}' (normalized to '{kind}'). Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config))


__all__ = [
    "BaseChatModel",
    "OpenAIChatModel",
    "create_chat_model",
]
