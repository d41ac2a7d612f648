"""Unit tests for answer synthesis and reference mapping."""

from __future__ import annotations

import pytest
from conftest import fake_llm, make_result
from langchain_core.messages import HumanMessage, SystemMessage

from grounded_rag.answering import (
    AnswerSynthesizer,
    map_references,
    parse_llm_response,
)
from grounded_rag.answering.prompts import build_answer_prompt, format_context
from grounded_rag.exceptions import AnswerParseFailure


def _results():
    pages = ["4", "0", "2-3", "1", "7"]
    return [make_result(i, page_id=p) for i, p in enumerate(pages)]


# ── prompt ─────────────────────────────────────────────────────────────


def test_context_numbers_texts_from_one() -> None:
    context = format_context([make_result(0), make_result(1)])
    assert context == "Text #1. Chunk text number 0.\n\nText #2. Chunk text number 1."


def test_prompt_carries_context_and_question() -> None:
    system, human = build_answer_prompt("What is it?", [make_result(0)])
    assert isinstance(system, SystemMessage)
    assert '"references"' in system.content
    assert isinstance(human, HumanMessage)
    assert human.content == "Context: Text #1. Chunk text number 0.\n\nQuestion: What is it?"


# ── parse_llm_response ─────────────────────────────────────────────────


class TestParseLLMResponse:
    def test_fenced_json(self) -> None:
        raw = 'Sure!\n```json\n{"text": "Forty two.", "references": [1, 3]}\n```\nDone.'
        parsed = parse_llm_response(raw)
        assert parsed.text == "Forty two."
        assert parsed.references == [1, 3]

    def test_bare_json_object(self) -> None:
        parsed = parse_llm_response('  {"text": "Bare.", "references": []}  ')
        assert parsed.text == "Bare."
        assert parsed.references == []

    def test_invalid_escapes_are_repaired(self) -> None:
        raw = '```json\n{"text": "snake\\_case and \\(x\\) and \\n", "references": [2]}\n```'
        parsed = parse_llm_response(raw)
        assert parsed.text == "snake_case and (x) and \n"

    def test_escaped_backslash_is_kept(self) -> None:
        raw = '```json\n{"text": "C:\\\\_dir", "references": []}\n```'
        assert parse_llm_response(raw).text == "C:\\_dir"

    def test_json_fence_wins_over_earlier_code_fence(self) -> None:
        raw = (
            'Example:\n```python\nprint("hi")\n```\n'
            'Answer:\n```json\n{"text": "Forty two.", "references": [2]}\n```'
        )
        parsed = parse_llm_response(raw)
        assert parsed.text == "Forty two."
        assert parsed.references == [2]

    def test_untagged_fence_after_text_fence(self) -> None:
        raw = '```text\nnotes\n```\n```\n{"text": "Plain fence.", "references": []}\n```'
        assert parse_llm_response(raw).text == "Plain fence."

    def test_only_foreign_fences_raise(self) -> None:
        with pytest.raises(AnswerParseFailure):
            parse_llm_response("```text\nnot the answer\n```")

    def test_missing_references_default_to_empty(self) -> None:
        assert parse_llm_response('{"text": "No refs."}').references == []

    @pytest.mark.parametrize(
        "raw",
        [
            "Just prose, no JSON at all.",
            "```json\n{not json}\n```",
            '```json\n{"answer": "wrong key"}\n```',
            '```json\n{"text": "x", "references": ["one"]}\n```',
        ],
    )
    def test_unparseable_output_raises(self, raw: str) -> None:
        with pytest.raises(AnswerParseFailure):
            parse_llm_response(raw)


# ── map_references ─────────────────────────────────────────────────────


class TestMapReferences:
    def test_maps_one_based_refs_sorted_by_page(self) -> None:
        results = _results()
        citations = map_references([1, 3], results)
        # Ref 1 -> result 0 (page "4"), ref 3 -> result 2 (page "2-3").
        assert [c.text for c in citations] == [results[2].chunk_text, results[0].chunk_text]
        assert [c.page for c in citations] == [3, 5]

    def test_out_of_range_refs_are_dropped(self) -> None:
        citations = map_references([0, 6, -1, 2], _results())
        assert [c.page for c in citations] == [1]

    def test_non_integer_and_duplicate_refs_are_dropped(self) -> None:
        citations = map_references([2.5, 4, 4.0, float("nan")], _results())
        assert [c.page for c in citations] == [2]

    def test_no_results_means_no_citations(self) -> None:
        assert map_references([1, 2], []) == []

    def test_short_ref(self) -> None:
        [citation] = map_references([5], _results())
        assert citation.short_ref() == "[doc-1§p.8]"


# ── AnswerSynthesizer ──────────────────────────────────────────────────


class TestAnswerSynthesizer:
    def test_answer_with_citations(self) -> None:
        results = _results()
        llm = fake_llm('```json\n{"text": "The answer.", "references": [1, 3]}\n```')
        answer = AnswerSynthesizer(llm=llm).synthesize("Question?", results)

        assert answer.text == "The answer."
        assert [c.text for c in answer.citations] == [results[2].chunk_text, results[0].chunk_text]
        assert answer.search_results == results
        messages = llm.invoke.call_args.args[0]
        assert "Text #1." in messages[1].content
        assert "Text #5." in messages[1].content

    def test_falls_back_to_raw_text(self) -> None:
        raw = "I could not produce JSON, sorry."
        answer = AnswerSynthesizer(llm=fake_llm(raw)).synthesize("Question?", _results())
        assert answer.text == raw
        assert answer.citations == []

    def test_malformed_json_falls_back(self) -> None:
        raw = '```json\n{"text": "unterminated}\n```'
        answer = AnswerSynthesizer(llm=fake_llm(raw)).synthesize("Question?", _results())
        assert answer.text == raw
        assert answer.citations == []

    def test_llm_invoked_without_results(self) -> None:
        llm = fake_llm('{"text": "I do not know.", "references": [1]}')
        answer = AnswerSynthesizer(llm=llm).synthesize("Question?", [])
        llm.invoke.assert_called_once()
        assert answer.text == "I do not know."
        assert answer.citations == []

    def test_content_blocks_are_joined(self) -> None:
        llm = fake_llm("")
        llm.invoke.return_value.content = [
            {"type": "text", "text": '{"text": "Blocks", '},
            {"type": "text", "text": '"references": []}'},
        ]
        assert AnswerSynthesizer(llm=llm).synthesize("q", []).text == "Blocks"

    def test_transient_llm_error_is_retried(self) -> None:
        llm = fake_llm('{"text": "ok", "references": []}')
        good = llm.invoke.return_value
        llm.invoke.side_effect = [ConnectionError("blip"), good]
        assert AnswerSynthesizer(llm=llm).synthesize("q", []).text == "ok"
        assert llm.invoke.call_count == 2
