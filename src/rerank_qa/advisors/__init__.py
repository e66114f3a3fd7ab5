"""rerank_qa.advisors

Advisor chain components.

An advisor wraps the rest of a chat pipeline: it may rewrite the outgoing
request and decorate the response coming back. Advisors are composed into a
chain ordered by priority, ending with the terminal model call.

Modules
-------
types
    Request, response, and per-request context values.
base
    Advisor interfaces and chain protocols.
chain
    Default chain implementation.
rerank_qa_advisor
    Retrieval, rerank, and context-injection advisor.
chat_model_advisor
    Terminal advisor performing the model call.
"""

from .base import (
    HIGHEST_PRECEDENCE,
    LOWEST_PRECEDENCE,
    CallAroundAdvisor,
    CallAroundAdvisorChain,
    StreamAroundAdvisor,
    StreamAroundAdvisorChain,
)
from .chain import DefaultAroundAdvisorChain
from .chat_model_advisor import ChatModelAdvisor
from .rerank_qa_advisor import (
    QUESTION_ANSWER_CONTEXT,
    RerankAdvisorConfig,
    RerankQuestionAnswerAdvisor,
    has_finish_reason,
)
from .types import (
    FILTER_EXPRESSION,
    RELEVANCY_THRESHOLD_PARAM,
    RETRIEVED_DOCUMENTS,
    AdviseContext,
    AdvisedRequest,
    AdvisedResponse,
)

__all__ = [
    "HIGHEST_PRECEDENCE",
    "LOWEST_PRECEDENCE",
    "CallAroundAdvisor",
    "CallAroundAdvisorChain",
    "StreamAroundAdvisor",
    "StreamAroundAdvisorChain",
    "DefaultAroundAdvisorChain",
    "ChatModelAdvisor",
    "QUESTION_ANSWER_CONTEXT",
    "RerankAdvisorConfig",
    "RerankQuestionAnswerAdvisor",
    "has_finish_reason",
    "FILTER_EXPRESSION",
    "RELEVANCY_THRESHOLD_PARAM",
    "RETRIEVED_DOCUMENTS",
    "AdviseContext",
    "AdvisedRequest",
    "AdvisedResponse",
]
