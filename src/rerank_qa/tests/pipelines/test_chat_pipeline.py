import asyncio

import pytest

from rerank_qa.advisors.rerank_qa_advisor import RerankAdvisorConfig, RerankQuestionAnswerAdvisor
from rerank_qa.advisors.types import RETRIEVED_DOCUMENTS
from rerank_qa.common.schemas import ChatResponse, Document, Generation, RerankResult
from rerank_qa.generation.chat_model import BaseChatModel
from rerank_qa.pipelines.chat_pipeline import AdvisedChatPipeline
from rerank_qa.retrieval.data_source import DataSource
from rerank_qa.retrieval.reranker import BaseReranker


class RecordingChatModel(BaseChatModel):
    """Chat model stand-in returning canned text and recording prompts."""

    def __init__(self, chunks=("An", "swer")):
        self.chunks = list(chunks)
        self.messages = []

    @classmethod
    def from_config_dict(cls, config):
        return cls()

    def call(self, messages):
        self.messages.append(messages)
        return ChatResponse(results=[Generation(text="".join(self.chunks), finish_reason="stop")])

    async def astream(self, messages):
        self.messages.append(messages)
        for i, chunk in enumerate(self.chunks):
            finish = "stop" if i == len(self.chunks) - 1 else None
            yield ChatResponse(results=[Generation(text=chunk, finish_reason=finish)])


class StaticSource(DataSource):
    def __init__(self, texts):
        self.texts = texts
        self.filters = []

    def search(self, query, filter_expression=None):
        self.filters.append(filter_expression)
        return [Document(text=t) for t in self.texts]


class PrefixReranker(BaseReranker):
    """Scores 1.0 for passages starting with 'keep', 0.0 otherwise."""

    def rerank(self, query, documents, model):
        return [
            RerankResult(index=i, relevance_score=1.0 if text.startswith("keep") else 0.0)
            for i, text in enumerate(documents)
        ]


def _pipeline(model, source=None, **kwargs):
    source = source or StaticSource(["keep: the sky is blue", "noise"])
    advisor = RerankQuestionAnswerAdvisor(
        RerankAdvisorConfig(data_sources=[source], api_key="k"),
        reranker=PrefixReranker(),
    )
    return AdvisedChatPipeline(model, advisors=[advisor], **kwargs)


def test_call_renders_context_into_prompt():
    model = RecordingChatModel()
    pipeline = _pipeline(model, system_text="Be brief.")

    response = pipeline.call("Why is the sky blue?")

    system, user = model.messages[0]
    assert system == {"role": "system", "content": "Be brief."}
    assert user["role"] == "user"
    assert user["content"].startswith("Why is the sky blue?")
    assert "keep: the sky is blue" in user["content"]
    assert "noise" not in user["content"]
    assert "{{" not in user["content"]

    assert response.text == "Answer"
    assert [d.text for d in response.metadata[RETRIEVED_DOCUMENTS]] == ["keep: the sky is blue"]


def test_call_forwards_per_request_overrides():
    source = StaticSource(["keep: x"])
    pipeline = _pipeline(RecordingChatModel(), source=source)

    pipeline("q", advise_context={"qa_filter_expression": "lang == 'en'"})

    assert source.filters == ["lang == 'en'"]


def test_call_without_advisors_reaches_model_directly():
    model = RecordingChatModel()

    response = AdvisedChatPipeline(model).call("Hi there")

    assert model.messages[0] == [{"role": "user", "content": "Hi there"}]
    assert RETRIEVED_DOCUMENTS not in response.metadata


def test_stream_yields_increments_and_annotates_last():
    model = RecordingChatModel(chunks=("a", "b", "c"))
    pipeline = _pipeline(model)

    async def _run():
        return [chunk async for chunk in pipeline.stream("q")]

    chunks = asyncio.run(_run())

    assert [c.text for c in chunks] == ["a", "b", "c"]
    assert [RETRIEVED_DOCUMENTS in c.metadata for c in chunks] == [False, False, True]
    assert "keep: the sky is blue" in model.messages[0][-1]["content"]


@pytest.mark.parametrize(
    "question",
    [
        "Is {# a comment marker?",
        "What does {{ 7*7 }} print?",
        "{{ ''.__class__.__mro__[1].__name__ }}",
        "How do I write {% if x %} blocks?",
        "Close it with {% endraw %} or {%- endraw -%}, then {{ x }}",
        "Unbalanced {{ and {% and {# all at once",
        "trailing brace {",
    ],
)
def test_question_reaches_model_verbatim(question):
    model = RecordingChatModel()

    _pipeline(model).call(question)

    user = model.messages[0][-1]["content"]
    assert user.startswith(question + "\n") or user.startswith(question + "\r\n")
    assert "keep: the sky is blue" in user
    assert "{{ question_answer_context }}" not in user


def test_system_text_reaches_model_verbatim():
    model = RecordingChatModel()

    _pipeline(model, system_text="Answer in {{ lang }}.").call("q")

    assert model.messages[0][0] == {"role": "system", "content": "Answer in {{ lang }}."}


def test_streamed_question_reaches_model_verbatim():
    model = RecordingChatModel(chunks=("x",))
    question = "What is {{ 7*7 }}?"

    async def _run():
        return [chunk async for chunk in _pipeline(model).stream(question)]

    asyncio.run(_run())

    assert model.messages[0][-1]["content"].startswith(question)
