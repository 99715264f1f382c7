"""End-to-end chat over one document with fake model/index collaborators."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from pdf_chat.exception.custom_exception import LimitExceeded, NotFound, UpstreamFailure, ValidationFailure
from pdf_chat.prompts.prompt_library import REWRITE_INSTRUCTION

ANSWER_1 = "Refunds are accepted within 30 days of purchase."
REWRITE_2 = "refund policy for digital goods"
ANSWER_2 = "Digital goods can be refunded within 14 days if not downloaded."


@pytest.mark.asyncio
async def test_two_question_conversation(db, document, container_factory, recording_llm_factory, vector_index, ingestor) -> None:
    llm = recording_llm_factory(ANSWER_1, REWRITE_2, ANSWER_2)
    container = container_factory(llm)
    service = container.chat_service

    first = await service.ask_question(db, "user_1", "doc1", "What is the refund policy?")

    assert first.answer == ANSWER_1
    assert ingestor.calls == ["doc1"]
    assert vector_index.population_events == ["doc1"]
    # no history yet: the question itself is the search query
    assert vector_index.embedded_queries == ["What is the refund policy?"]

    turns = await container.chat_repo.get_history(db, "user_1", "doc1")
    assert [(t.role, t.message) for t in turns] == [
        ("human", "What is the refund policy?"),
        ("ai", ANSWER_1),
    ]

    second = await service.ask_question(db, "user_1", "doc1", "And for digital goods?")

    assert second.answer == ANSWER_2
    assert ingestor.calls == ["doc1"]
    assert vector_index.population_events == ["doc1"]
    assert vector_index.embedded_queries[-1] == REWRITE_2

    rewrite_prompt, answer_prompt = llm.received[1], llm.received[2]
    history = [HumanMessage("What is the refund policy?"), AIMessage(ANSWER_1)]

    # the model sees exactly the messages the orchestrator builds
    orchestrator = container.orchestrator
    assert rewrite_prompt == orchestrator.build_rewrite_messages("And for digital goods?", history)
    assert answer_prompt == orchestrator.build_answer_messages(
        "And for digital goods?", history, vector_index.namespaces["doc1"][:2]
    )
    assert rewrite_prompt[0] == HumanMessage("What is the refund policy?")
    assert rewrite_prompt[1] == AIMessage(ANSWER_1)
    assert rewrite_prompt[-2].content == "And for digital goods?"
    assert rewrite_prompt[-1].content == REWRITE_INSTRUCTION
    # the pending question is not duplicated into the history
    assert sum(m.content == "And for digital goods?" for m in rewrite_prompt) == 1

    assert answer_prompt[-1].content == "And for digital goods?"
    assert "Refunds are accepted within 30 days" in answer_prompt[0].content

    turns = await container.chat_repo.get_history(db, "user_1", "doc1")
    assert [t.role for t in turns] == ["human", "ai", "human", "ai"]


@pytest.mark.asyncio
async def test_failed_answer_keeps_question_only(db, document, container_factory, failing_llm) -> None:
    container = container_factory(failing_llm)

    with pytest.raises(UpstreamFailure):
        await container.chat_service.ask_question(db, "user_1", "doc1", "What is the refund policy?")

    assert await container.chat_repo.count_turns(db, "user_1", "doc1", role="human") == 1
    assert await container.chat_repo.count_turns(db, "user_1", "doc1", role="ai") == 0


@pytest.mark.asyncio
async def test_retry_after_failure_sees_orphaned_question(
    db, document, container_factory, failing_llm, recording_llm_factory
) -> None:
    with pytest.raises(UpstreamFailure):
        await container_factory(failing_llm).chat_service.ask_question(db, "user_1", "doc1", "q?")

    llm = recording_llm_factory("standalone q", "the answer")
    result = await container_factory(llm).chat_service.ask_question(db, "user_1", "doc1", "q?")

    assert result.answer == "the answer"
    turns = await container_factory(llm).chat_repo.get_history(db, "user_1", "doc1")
    assert [t.role for t in turns] == ["human", "human", "ai"]


@pytest.mark.asyncio
async def test_history_window_is_bounded(db, document, container_factory, recording_llm_factory) -> None:
    config = {"retriever": {"top_k": 2}, "history": {"max_turns": 2}, "limits": {}}
    llm = recording_llm_factory("a1", "rewrite", "a2", "rewrite", "a3")
    service = container_factory(llm, config=config).chat_service

    for q in ("q1", "q2", "q3"):
        await service.ask_question(db, "user_1", "doc1", q)

    last_rewrite = llm.received[-2]
    history = last_rewrite[:-2]
    assert [m.content for m in history] == ["q2", "a2"]


@pytest.mark.asyncio
async def test_question_limit(db, document, container_factory, recording_llm_factory) -> None:
    config = {"history": {"max_turns": 10}, "limits": {"max_questions_per_document": 1}}
    service = container_factory(recording_llm_factory("a1"), config=config).chat_service

    await service.ask_question(db, "user_1", "doc1", "q1")
    with pytest.raises(LimitExceeded):
        await service.ask_question(db, "user_1", "doc1", "q2")

    usage = await service.usage(db, "user_1", "doc1")
    assert (usage.questions_asked, usage.remaining) == (1, 0)


@pytest.mark.asyncio
async def test_blank_question_and_unknown_document(db, document, container) -> None:
    with pytest.raises(ValidationFailure):
        await container.chat_service.ask_question(db, "user_1", "doc1", "   ")
    with pytest.raises(NotFound):
        await container.chat_service.ask_question(db, "user_1", "missing", "q")
    assert await container.chat_repo.count_turns(db, "user_1", "doc1") == 0


@pytest.mark.asyncio
async def test_orchestrator_answer_does_not_write_transcript(db, document, container) -> None:
    answer = await container.orchestrator.answer(db, "user_1", "doc1", "What is the refund policy?")
    assert answer == "Refunds are accepted within 30 days of purchase."
    assert await container.chat_repo.count_turns(db, "user_1", "doc1") == 0
