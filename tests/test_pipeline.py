"""Tests for the shared decode pipeline and buffered decoding."""

from __future__ import annotations

from conftest import item, ndjson

from n8n_chat_pipe.streaming.pipeline import DeltaPipeline, GenerateResult, decode_buffered_response
from n8n_chat_pipe.streaming.tag_segmenter import Delta

BODY = ndjson(
    {"type": "begin", "metadata": {"nodeId": "agent"}},
    item("Hello <think>"),
    item("secret"),
    item("</think> world"),
    {"type": "end"},
) + b"{not json}\n" + b'{"output":"!"}'


def _decode_in_two(body: bytes, cut: int) -> list[Delta]:
    pipeline = DeltaPipeline()
    return pipeline.feed(body[:cut]) + pipeline.feed(body[cut:]) + pipeline.flush()


def test_deltas_for_reference_body() -> None:
    pipeline = DeltaPipeline()
    deltas = pipeline.feed(BODY) + pipeline.flush()
    assert deltas == [
        Delta("answer", "Hello "),
        Delta("reasoning", "secret"),
        Delta("answer", " world"),
        Delta("answer", "!"),
    ]
    assert pipeline.lines_seen == 7
    assert pipeline.lines_skipped == 3


def test_chunk_boundaries_do_not_change_deltas() -> None:
    expected = _decode_in_two(BODY, len(BODY))
    for cut in range(len(BODY) + 1):
        assert _decode_in_two(BODY, cut) == expected


def test_byte_at_a_time_feed_matches_whole_feed() -> None:
    pipeline = DeltaPipeline()
    deltas: list[Delta] = []
    for idx in range(len(BODY)):
        deltas.extend(pipeline.feed(BODY[idx : idx + 1]))
    deltas.extend(pipeline.flush())
    assert deltas == _decode_in_two(BODY, 0)


def test_malformed_line_leaves_reasoning_state_untouched() -> None:
    pipeline = DeltaPipeline()
    pipeline.feed(ndjson(item("<think>partial")))
    assert pipeline.inside_reasoning is True
    assert pipeline.feed(b"{garbage\n") == []
    assert pipeline.inside_reasoning is True
    assert pipeline.feed(ndjson(item("more</think>done"))) == [
        Delta("reasoning", "more"),
        Delta("answer", "done"),
    ]


def test_buffered_text_equals_streamed_answer_deltas() -> None:
    pipeline = DeltaPipeline()
    streamed = pipeline.feed(BODY) + pipeline.flush()
    answer = "".join(delta.text for delta in streamed if delta.kind == "answer")
    result = decode_buffered_response(BODY)
    assert result.text == answer == "Hello  world!"


def test_buffered_single_output_object() -> None:
    result = decode_buffered_response(b'{"output":"<think>plan</think>Final"}')
    assert result == GenerateResult(text="Final")


def test_buffered_empty_body() -> None:
    result = decode_buffered_response(b"")
    assert result.text == ""
    assert result.to_dict() == {
        "text": "",
        "finishReason": "stop",
        "usage": {"inputTokens": 0, "outputTokens": 0, "totalTokens": 0},
    }


def test_buffered_custom_markers() -> None:
    body = ndjson(item("a[[b]]c"))
    assert decode_buffered_response(body, begin_marker="[[", end_marker="]]").text == "ac"
