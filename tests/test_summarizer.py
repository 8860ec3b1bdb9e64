"""Tests for Q&A summarization into knowledge card drafts."""

import json
from types import SimpleNamespace

import pytest

from app.features.knowledge.summarizer import (
    EMPTY_ANSWER,
    UNTITLED_QUESTION,
    KnowledgeSummarizer,
    SummarizationError,
    clean_tags,
    create_fallback_draft,
    parse_summary,
    truncate_with_ellipsis,
)
from conftest import completion_response


def _summary_json(**overrides) -> str:
    data = {
        "title": "Deploying to Vercel",
        "summary": "Deploys go through the Vercel CLI.",
        "mainAnswer": "Run `vercel --prod` from the repo root.",
        "tags": ["Deploy", " vercel ", "ops"],
    }
    data.update(overrides)
    return json.dumps(data)


# -- helpers -------------------------------------------------------------------


def test_truncate_with_ellipsis_exact_length() -> None:
    result = truncate_with_ellipsis("a" * 100, 80)
    assert len(result) == 80
    assert result.endswith("...")


def test_truncate_with_ellipsis_short_text_unchanged() -> None:
    assert truncate_with_ellipsis("short", 80) == "short"


def test_clean_tags_lowercases_trims_and_caps() -> None:
    tags = [" A ", "b", "", "  ", "C", "d", "e", "f", "g", "h", "i"]
    assert clean_tags(tags) == ["a", "b", "c", "d", "e", "f", "g"]


def test_clean_tags_keeps_duplicates() -> None:
    assert clean_tags(["ops", "OPS"]) == ["ops", "ops"]


def test_clean_tags_non_list() -> None:
    assert clean_tags("ops") == []
    assert clean_tags(None) == []


# -- parse_summary -------------------------------------------------------------


def test_parse_valid_summary() -> None:
    draft = parse_summary(_summary_json())
    assert draft.title == "Deploying to Vercel"
    assert draft.main_answer.startswith("Run")
    assert draft.tags == ["deploy", "vercel", "ops"]


def test_parse_truncates_long_title() -> None:
    draft = parse_summary(_summary_json(title="t" * 120))
    assert len(draft.title) == 80
    assert draft.title.endswith("...")


def test_parse_missing_tags_gives_empty_list() -> None:
    raw = json.dumps({"title": "T", "summary": "S", "mainAnswer": "A"})
    assert parse_summary(raw).tags == []


@pytest.mark.parametrize("content", [None, "", "not json", "[1, 2]"])
def test_parse_rejects_bad_content(content) -> None:
    with pytest.raises(SummarizationError):
        parse_summary(content)


def test_parse_rejects_missing_main_answer() -> None:
    raw = json.dumps({"title": "T", "summary": "S", "tags": []})
    with pytest.raises(SummarizationError, match="mainAnswer"):
        parse_summary(raw)


# -- fallback ------------------------------------------------------------------


def test_fallback_draft_from_raw_exchange() -> None:
    draft = create_fallback_draft("How do I deploy?", "x" * 600)
    assert draft.title == "How do I deploy?"
    assert len(draft.summary) == 500
    assert draft.summary.endswith("...")
    assert draft.main_answer == "x" * 600
    assert draft.tags == ["auto-generated"]


def test_fallback_draft_placeholders_for_empty_input() -> None:
    draft = create_fallback_draft("   ", "")
    assert draft.title == UNTITLED_QUESTION
    assert draft.summary == EMPTY_ANSWER
    assert draft.main_answer == EMPTY_ANSWER


def test_fallback_title_keeps_question_whitespace() -> None:
    question = "  " + "q" * 100
    draft = create_fallback_draft(question, "A.")
    assert draft.title == question[:77] + "..."
    assert len(draft.title) == 80


def test_fallback_title_short_question_unchanged() -> None:
    assert create_fallback_draft(" How do I deploy? ", "A.").title == " How do I deploy? "


# -- KnowledgeSummarizer.summarize_qa -----------------------------------------


async def test_summarize_uses_json_mode(openai_client) -> None:
    usage = SimpleNamespace(prompt_tokens=40, completion_tokens=20, total_tokens=60)
    openai_client.chat.completions.create.return_value = completion_response(
        _summary_json(), usage=usage
    )
    summarizer = KnowledgeSummarizer(openai_client, model="gpt-4.1-mini")

    draft = await summarizer.summarize_qa("How do I deploy?", "Use vercel.")

    assert draft.title == "Deploying to Vercel"
    kwargs = openai_client.chat.completions.create.await_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["temperature"] == 0.3
    assert kwargs["messages"][0]["role"] == "system"
    assert "Question: How do I deploy?" in kwargs["messages"][1]["content"]


async def test_summarize_falls_back_on_api_error(openai_client) -> None:
    openai_client.chat.completions.create.side_effect = RuntimeError("boom")
    summarizer = KnowledgeSummarizer(openai_client)

    draft = await summarizer.summarize_qa("How do I deploy?", "Use vercel.")

    assert draft.tags == ["auto-generated"]
    assert draft.title == "How do I deploy?"


async def test_summarize_falls_back_on_malformed_output(openai_client) -> None:
    openai_client.chat.completions.create.return_value = completion_response("{not json")
    summarizer = KnowledgeSummarizer(openai_client)

    draft = await summarizer.summarize_qa("Q?", "A.")

    assert draft.tags == ["auto-generated"]
    assert draft.main_answer == "A."


async def test_summarize_fallback_logs_reason_and_question(openai_client, caplog) -> None:
    openai_client.chat.completions.create.side_effect = RuntimeError("boom")
    summarizer = KnowledgeSummarizer(openai_client)

    with caplog.at_level("WARNING", logger="TeamMemory.Knowledge.Summarizer"):
        await summarizer.summarize_qa("How do I deploy?", "Use vercel.")

    assert "Summarization failed, using fallback card: boom | question=How do I deploy?" in caplog.text
