from rerank_qa.advisors.rerank_qa_advisor import RerankQuestionAnswerAdvisor
from rerank_qa.app import container as container_module
from rerank_qa.app.container import build_container
from rerank_qa.common.schemas import ChatResponse, Document, Generation
from rerank_qa.config import GlobalConfig
from rerank_qa.generation.chat_model import BaseChatModel
from rerank_qa.pipelines.chat_pipeline import AdvisedChatPipeline
from rerank_qa.retrieval.data_source import DataSource
from rerank_qa.retrieval.reranker import CohereReranker


class OneDocSource(DataSource):
    def search(self, query, filter_expression=None):
        return [Document(text="doc")]


class CannedChatModel(BaseChatModel):
    @classmethod
    def from_config_dict(cls, config):
        return cls()

    def call(self, messages):
        return ChatResponse(results=[Generation(text="ok", finish_reason="stop")])

    async def astream(self, messages):
        yield self.call(messages)


def _config():
    return GlobalConfig(
        {
            "advisor": {"api_key": "co-key", "relevancy_threshold": 0.4, "order": 3},
            "reranker": {"api_base": "http://rerank.local", "timeout": 2},
            "data_sources": {"kb": {"type": "vector_index", "persist_dir": "unused"}},
            "chat_model": {"type": "fake"},
            "system_text": "sys",
        }
    )


def test_container_wires_advisor_from_config():
    source = OneDocSource()
    c = build_container(_config(), data_sources=[source])

    advisor = c.advisor

    assert isinstance(advisor, RerankQuestionAnswerAdvisor)
    assert advisor.data_sources == (source,)
    assert advisor.order == 3
    assert advisor.config.relevancy_threshold == 0.4
    assert isinstance(advisor.reranker, CohereReranker)
    assert advisor.reranker.url == "http://rerank.local/v2/rerank"
    assert advisor.reranker.timeout == 2.0


def test_container_caches_components():
    c = build_container(_config(), data_sources=[OneDocSource()])

    assert c.advisor is c.advisor
    assert c.reranker is c.advisor.reranker


def test_container_builds_sources_from_config(monkeypatch):
    built = []

    def fake_create_data_source(config, *, name=None, index=None, base_dir=None):
        built.append((name, dict(config)))
        return OneDocSource()

    monkeypatch.setattr(
        "rerank_qa.retrieval.data_source.create_data_source",
        fake_create_data_source,
    )

    c = build_container(_config())

    assert len(c.data_sources) == 1
    assert built == [("kb", {"type": "vector_index", "persist_dir": "unused"})]


def test_container_pipeline_uses_configured_chat_model(monkeypatch):
    monkeypatch.setattr(
        "rerank_qa.generation.chat_model.create_chat_model",
        lambda config: CannedChatModel(),
    )

    c = build_container(_config(), data_sources=[OneDocSource()])
    pipeline = c.pipeline

    assert isinstance(pipeline, AdvisedChatPipeline)
    assert isinstance(pipeline.chat_model, CannedChatModel)
    assert pipeline.advisors == (c.advisor,)
    assert pipeline.system_text == "sys"


def test_as_mapping_accepts_objects():
    class Section:
        def __init__(self):
            self.api_key = "k"

    assert container_module._as_mapping(Section()) == {"api_key": "k"}
