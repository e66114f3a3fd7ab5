"""rerank_qa.advisors.chat_model_advisor

Terminal advisor that performs the model call.

It always runs last (lowest precedence), renders the request's text with its
params, and calls the chat model instead of continuing down the chain.
"""

from __future__ import annotations

from typing import AsyncIterator

from rerank_qa.advisors.base import (
    LOWEST_PRECEDENCE,
    CallAroundAdvisor,
    CallAroundAdvisorChain,
    StreamAroundAdvisor,
    StreamAroundAdvisorChain,
)
from rerank_qa.advisors.types import AdvisedRequest, AdvisedResponse
from rerank_qa.generation.chat_model import BaseChatModel
from rerank_qa.generation.prompt_renderer import PromptRenderer


class ChatModelAdvisor(CallAroundAdvisor, StreamAroundAdvisor):
    """Call the chat model with the fully advised request.

    Parameters
    ----------
    chat_model : BaseChatModel
        Model to call.
    prompt_renderer : PromptRenderer or None, optional
        Renderer for system and user text. Defaults to a new
        :class:`PromptRenderer`.
    """

    def __init__(self, chat_model: BaseChatModel, prompt_renderer: PromptRenderer | None = None):
        self.chat_model = chat_model
        self.prompt_renderer = prompt_renderer or PromptRenderer()

    @property
    def order(self) -> int:
        return LOWEST_PRECEDENCE

    def around_call(
            self,
            advised_request: AdvisedRequest,
            chain: CallAroundAdvisorChain,
        ) -> AdvisedResponse:
        messages = self.prompt_renderer.render(advised_request)
        response = self.chat_model.call(messages)
        return AdvisedResponse(response=response, advise_context=advised_request.advise_context)

    async def around_stream(
            self,
            advised_request: AdvisedRequest,
            chain: StreamAroundAdvisorChain,
        ) -> AsyncIterator[AdvisedResponse]:
        messages = self.prompt_renderer.render(advised_request)
        async for response in self.chat_model.astream(messages):
            yield AdvisedResponse(response=response, advise_context=advised_request.advise_context)


__all__ = ["ChatModelAdvisor"]
