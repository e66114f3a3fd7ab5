import textwrap

import pytest

from rerank_qa.advisors.rerank_qa_advisor import RerankAdvisorConfig
from rerank_qa.config import GlobalConfig
from rerank_qa.errors import ConfigurationError
from rerank_qa.retrieval.data_source import DataSource


class EmptySource(DataSource):
    def search(self, query, filter_expression=None):
        return []


def _write(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body))
    return path


def test_load_expands_environment_variables(tmp_path, monkeypatch):
    monkeypatch.setenv("COHERE_API_KEY", "co-secret")
    path = _write(
        tmp_path,
        """
        advisor:
          api_key: ${COHERE_API_KEY}
          relevancy_threshold: 0.6
        data_sources:
          docs:
            type: vector_index
            persist_dir: ./storage/docs
        chat_model:
          type: openai_chat
          model_name: gpt-4o-mini
        system_text: Be concise.
        """,
    )

    cfg = GlobalConfig.load(path)

    assert cfg.advisor == {"api_key": "co-secret", "relevancy_threshold": 0.6}
    assert cfg.data_sources["docs"]["persist_dir"] == "./storage/docs"
    assert cfg.chat_model["model_name"] == "gpt-4o-mini"
    assert cfg.system_text == "Be concise."
    assert cfg.base_dir == tmp_path.resolve()


def test_optional_sections_default_to_empty():
    cfg = GlobalConfig({"data_sources": {"a": {}}, "chat_model": {"type": "openai"}})

    assert cfg.advisor == {}
    assert cfg.reranker == {}
    assert cfg.system_text is None
    assert cfg.base_dir is None


def test_optional_section_must_be_mapping():
    with pytest.raises(TypeError):
        GlobalConfig({"reranker": ["cohere"]}).reranker


def test_missing_required_sections():
    cfg = GlobalConfig({})

    with pytest.raises(KeyError):
        cfg.data_sources
    with pytest.raises(KeyError):
        cfg.chat_model


@pytest.mark.parametrize(
    "sources, error",
    [
        ({}, ValueError),
        (["docs"], TypeError),
        ({"docs": "path"}, TypeError),
        ({"  ": {}}, TypeError),
    ],
)
def test_invalid_data_sources(sources, error):
    with pytest.raises(error):
        GlobalConfig({"data_sources": sources}).data_sources


def test_empty_file_gives_empty_config(tmp_path):
    cfg = GlobalConfig.load(_write(tmp_path, ""))

    assert cfg.raw == {}
    assert cfg.advisor == {}


def test_unset_api_key_variable_fails_at_advisor_config(tmp_path, monkeypatch):
    monkeypatch.delenv("COHERE_API_KEY", raising=False)
    path = _write(
        tmp_path,
        """
        advisor:
          api_key: ${COHERE_API_KEY}
        """,
    )

    cfg = GlobalConfig.load(path)

    assert cfg.advisor["api_key"] == "${COHERE_API_KEY}"
    with pytest.raises(ConfigurationError, match="COHERE_API_KEY"):
        RerankAdvisorConfig.from_config_dict(cfg.advisor, [EmptySource()])
