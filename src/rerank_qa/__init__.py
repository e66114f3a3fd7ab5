"""rerank_qa

Rerank question-answer advisor package.

This package provides a retrieval-augmentation stage for chat pipelines: it
searches several data sources, reranks the merged passages with a relevance
model, drops passages under a threshold, injects the rest into the prompt,
and publishes the passages used on the response. Single-shot and streamed
calls are both supported.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader and cached accessors.
app
    Application container and composition root for wiring components.
advisors
    Advisor interfaces, the default chain, and the rerank-QA advisor.
pipelines
    High-level advised chat pipeline.
retrieval
    Data sources, filter expressions, and rerankers.
generation
    Prompt rendering and chat-model interfaces.
common
    Shared value types (passages, rerank verdicts, responses).

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
RerankQAContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured container.
RerankQuestionAnswerAdvisor
    The retrieval-augmentation advisor.
RerankAdvisorConfig
    Validated advisor settings.
AdvisedChatPipeline
    End-to-end advised chat pipeline.
Document
    Retrieved passage schema.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("rerank-qa")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import RerankQAContainer, build_container
from .advisors import RerankAdvisorConfig, RerankQuestionAnswerAdvisor
from .pipelines import AdvisedChatPipeline
from .common import Document

__all__ = [
    "__version__",
    "GlobalConfig",
    "RerankQAContainer",
    "build_container",
    "RerankAdvisorConfig",
    "RerankQuestionAnswerAdvisor",
    "AdvisedChatPipeline",
    "Document",
]
