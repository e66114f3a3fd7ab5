"""rerank_qa.pipelines

Pipeline orchestration components.

This package contains the high-level pipeline that runs an advisor chain
around a chat-model call. Pipelines are stateless beyond their configured
components, making them safe to reuse across requests and execution
contexts.

Modules
-------
chat_pipeline
    End-to-end advised chat pipeline, single-shot and streamed.
"""

from .chat_pipeline import AdvisedChatPipeline

__all__ = ["AdvisedChatPipeline"]
