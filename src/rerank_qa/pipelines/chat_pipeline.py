"""rerank_qa.pipelines.chat_pipeline

End-to-end advised chat pipeline orchestration.

This module defines the :class:`AdvisedChatPipeline`, which builds an advisor
chain for each request, runs it, and unwraps the model response. Advisors
(such as the rerank-QA advisor) run first in priority order; the terminal
chat-model advisor always runs last.

Classes
-------
AdvisedChatPipeline
    Orchestrates advisors → prompt rendering → model call, single-shot or
    streamed.
"""

from typing import Any, AsyncIterator, Mapping, Sequence

from rerank_qa.advisors.chain import DefaultAroundAdvisorChain
from rerank_qa.advisors.chat_model_advisor import ChatModelAdvisor
from rerank_qa.advisors.types import AdviseContext, AdvisedRequest
from rerank_qa.common.schemas import ChatResponse
from rerank_qa.generation.chat_model import BaseChatModel
from rerank_qa.generation.prompt_renderer import PromptRenderer, escape_template


class AdvisedChatPipeline:
    """Advised chat orchestrator.

    This class wires together:
    - a list of advisors that rewrite requests and decorate responses
    - a prompt renderer that substitutes template params
    - a chat model for the final call

    The pipeline is stateless beyond its configured components, making it
    safe to reuse across requests.

    Parameters
    ----------
    chat_model : BaseChatModel
        Model called at the end of every chain.
    advisors : Sequence or None, optional
        Advisors to run before the model call, in any order; they are sorted
        by their ``order`` property.
    prompt_renderer : PromptRenderer or None, optional
        Renderer used by the terminal advisor.
    system_text : str or None, optional
        Default system message for every request.
    """

    def __init__(
            self,
            chat_model: BaseChatModel,
            advisors: Sequence | None = None,
            prompt_renderer: PromptRenderer | None = None,
            system_text: str | None = None,
        ):
        self.chat_model = chat_model
        self.advisors = tuple(advisors or ())
        self.terminal_advisor = ChatModelAdvisor(chat_model, prompt_renderer)
        self.system_text = system_text

    def _chain(self) -> DefaultAroundAdvisorChain:
        return DefaultAroundAdvisorChain([*self.advisors, self.terminal_advisor])

    def _request(
            self,
            user_text: str,
            user_params: Mapping[str, Any] | None,
            advise_context: Mapping[str, Any] | AdviseContext | None,
            system_text: str | None,
        ) -> AdvisedRequest:
        if system_text is None:
            system_text = self.system_text
        return AdvisedRequest(
            user_text=escape_template(user_text),
            user_params=dict(user_params or {}),
            system_text=escape_template(system_text) if system_text else system_text,
            advise_context=AdviseContext.from_mapping(advise_context),
        )

    def call(
            self,
            user_text: str,
            *,
            user_params: Mapping[str, Any] | None = None,
            advise_context: Mapping[str, Any] | AdviseContext | None = None,
            system_text: str | None = None,
        ) -> ChatResponse:
        """Run the advised chain for one question.

        Parameters
        ----------
        user_text : str
            User's natural-language question. It reaches the model verbatim and
            is never evaluated as a template.
        user_params : Mapping[str, Any] or None, optional
            Extra params for templates that advisors append to the user text.
        advise_context : Mapping[str, Any] or AdviseContext or None, optional
            Per-call overrides, e.g. ``{"relevancy_threshold": "0.9"}`` or
            ``{"qa_filter_expression": "source == 'docs'"}``.
        system_text : str or None, optional
            System message overriding the pipeline default for this call. Like
            ``user_text`` it is sent verbatim.

        Returns
        -------
        ChatResponse
            The model response, decorated by every advisor.
        """
        request = self._request(user_text, user_params, advise_context, system_text)
        return self._chain().next_around_call(request).response

    async def stream(
            self,
            user_text: str,
            *,
            user_params: Mapping[str, Any] | None = None,
            advise_context: Mapping[str, Any] | AdviseContext | None = None,
            system_text: str | None = None,
        ) -> AsyncIterator[ChatResponse]:
        """Run the advised chain and yield response increments.

        Accepts the same arguments as :meth:`call`. Increments are yielded in
        the order the model produces them; the final one carries advisor
        metadata.
        """
        request = self._request(user_text, user_params, advise_context, system_text)
        stream = self._chain().next_around_stream(request)
        try:
            async for advised_response in stream:
                yield advised_response.response
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def __call__(self, user_text: str, **kwargs) -> ChatResponse:
        """Execute the pipeline as a callable.

        This is a convenience wrapper around :meth:`call`.
        """
        return self.call(user_text, **kwargs)


__all__ = ['AdvisedChatPipeline']
