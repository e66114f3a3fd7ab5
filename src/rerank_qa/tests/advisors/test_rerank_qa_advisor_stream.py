import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from rerank_qa.advisors.rerank_qa_advisor import (
    QUESTION_ANSWER_CONTEXT,
    RerankAdvisorConfig,
    RerankQuestionAnswerAdvisor,
    has_finish_reason,
)
from rerank_qa.advisors.types import RETRIEVED_DOCUMENTS, AdvisedRequest, AdvisedResponse
from rerank_qa.common.schemas import ChatResponse, Document, Generation, RerankResult
from rerank_qa.retrieval.data_source import DataSource
from rerank_qa.retrieval.reranker import BaseReranker


class ThreadRecordingSource(DataSource):
    """Data source recording the thread each search runs on."""

    def __init__(self, texts):
        self.texts = texts
        self.caller_threads = []

    def search(self, query, filter_expression=None):
        self.caller_threads.append(threading.current_thread())
        return [Document(text=t) for t in self.texts]


class KeepAllReranker(BaseReranker):
    def __init__(self):
        self.threads = []

    def rerank(self, query, documents, model):
        self.threads.append(threading.current_thread())
        return [RerankResult(index=i, relevance_score=1.0) for i in range(len(documents))]


class IndexOffline(Exception):
    pass


class BrokenSource(DataSource):
    def __init__(self, error):
        self.error = error

    def search(self, query, filter_expression=None):
        raise self.error


class IncrementChain:
    """Stream chain stand-in emitting a fixed sequence of increments."""

    def __init__(self, texts, finish_on_last=True):
        self.texts = texts
        self.finish_on_last = finish_on_last
        self.requests = []
        self.emitted = 0
        self.closed = False
        self.loop_thread = None

    def next_around_stream(self, advised_request):
        self.requests.append(advised_request)
        self.loop_thread = threading.current_thread()
        return self._stream(advised_request)

    async def _stream(self, advised_request):
        try:
            for i, text in enumerate(self.texts):
                last = i == len(self.texts) - 1
                finish = "stop" if last and self.finish_on_last else None
                self.emitted += 1
                yield AdvisedResponse(
                    response=ChatResponse(
                        results=[Generation(text=text, finish_reason=finish)],
                        metadata={"seq": i},
                    ),
                    advise_context=advised_request.advise_context,
                )
        finally:
            self.closed = True


def _advisor(sources, reranker=None, executor=None, **kwargs):
    cfg = RerankAdvisorConfig(data_sources=sources, api_key="test-key", **kwargs)
    return RerankQuestionAnswerAdvisor(cfg, reranker=reranker or KeepAllReranker(), executor=executor)


async def _collect(stream):
    return [item async for item in stream]


def test_only_finishing_increment_is_annotated():
    advisor = _advisor([ThreadRecordingSource(["A", "B"])])
    chain = IncrementChain(["He", "llo", " wor", "ld", "!"])

    increments = asyncio.run(_collect(advisor.around_stream(AdvisedRequest(user_text="Q"), chain)))

    assert [r.response.text for r in increments] == ["He", "llo", " wor", "ld", "!"]
    assert [r.response.metadata["seq"] for r in increments] == [0, 1, 2, 3, 4]
    for leading in increments[:-1]:
        assert RETRIEVED_DOCUMENTS not in leading.response.metadata
    final = increments[-1].response.metadata
    assert [d.text for d in final[RETRIEVED_DOCUMENTS]] == ["A", "B"]
    assert final["seq"] == 4


def test_stream_without_finish_reason_is_never_annotated():
    advisor = _advisor([ThreadRecordingSource(["A"])])
    chain = IncrementChain(["a", "b"], finish_on_last=False)

    increments = asyncio.run(_collect(advisor.around_stream(AdvisedRequest(user_text="Q"), chain)))

    assert all(RETRIEVED_DOCUMENTS not in r.response.metadata for r in increments)


def test_stream_forwards_augmented_request():
    advisor = _advisor([ThreadRecordingSource(["ctx"])])
    chain = IncrementChain(["x"])

    asyncio.run(_collect(advisor.around_stream(AdvisedRequest(user_text="Q"), chain)))

    assert chain.requests[0].user_params[QUESTION_ANSWER_CONTEXT] == "ctx"


def test_protected_stream_runs_blocking_work_off_the_event_loop():
    source = ThreadRecordingSource(["A"])
    reranker = KeepAllReranker()
    chain = IncrementChain(["x"])
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="isolated") as executor:
        advisor = _advisor([source], reranker=reranker, executor=executor)
        asyncio.run(_collect(advisor.around_stream(AdvisedRequest(user_text="Q"), chain)))

    # Reranking happens inside the isolated worker; the loop thread only relays.
    assert reranker.threads[0].name.startswith("isolated")
    assert reranker.threads[0] is not chain.loop_thread


def test_unprotected_stream_runs_blocking_work_on_the_caller():
    reranker = KeepAllReranker()
    chain = IncrementChain(["x"])
    advisor = _advisor([ThreadRecordingSource(["A"])], reranker=reranker, protect_from_blocking=False)

    asyncio.run(_collect(advisor.around_stream(AdvisedRequest(user_text="Q"), chain)))

    assert reranker.threads[0] is chain.loop_thread


@pytest.mark.parametrize("protect", [True, False])
def test_stream_failure_in_augmentation_never_starts_chain(protect):
    source_error = IndexOffline("index offline")
    advisor = _advisor([BrokenSource(source_error)], protect_from_blocking=protect)
    chain = IncrementChain(["x"])

    with pytest.raises(IndexOffline) as exc_info:
        asyncio.run(_collect(advisor.around_stream(AdvisedRequest(user_text="Q"), chain)))

    assert exc_info.value is source_error
    assert chain.requests == []


def test_early_close_stops_upstream_stream():
    advisor = _advisor([ThreadRecordingSource(["A"])])
    chain = IncrementChain(["1", "2", "3", "4", "5"])

    async def _take_two():
        stream = advisor.around_stream(AdvisedRequest(user_text="Q"), chain)
        taken = []
        async for item in stream:
            taken.append(item)
            if len(taken) == 2:
                break
        await stream.aclose()
        return taken

    taken = asyncio.run(_take_two())

    assert len(taken) == 2
    assert chain.emitted == 2
    assert chain.closed is True


def test_has_finish_reason_ignores_blank_values():
    blank = AdvisedResponse(response=ChatResponse(results=[Generation(text="a", finish_reason="  ")]))
    done = AdvisedResponse(response=ChatResponse(results=[Generation(text="a", finish_reason="length")]))

    assert has_finish_reason(blank) is False
    assert has_finish_reason(done) is True
