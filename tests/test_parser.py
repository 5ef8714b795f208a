"""Tests for the frame parser.

Covers boundary splitting, residual handling across arbitrary chunk
fragmentation, data-line stripping, multi-line payloads, and malformed
field lines.
"""

from __future__ import annotations

import pytest

from ledgerstream.errors import FrameDecodeAnomaly
from ledgerstream.streaming.parser import (
    decode_json_payload,
    extract_payloads,
    parse_frame,
    split_frames,
)

_WIRE = "data: Hel\n\ndata: lo\n\n: keepalive\n\ndata: World\n\n"


def _feed(chunks: list[str]) -> tuple[list[str], str]:
    """Run chunks through the parser the way the controller does."""
    buffer = ""
    payloads: list[str] = []
    for chunk in chunks:
        new, buffer = extract_payloads(buffer + chunk)
        payloads.extend(new)
    return payloads, buffer


# ── split_frames ──────────────────────────────────────────────────


class TestSplitFrames:
    def test_single_complete_frame(self):
        frames, residual = split_frames("data: hello\n\n")
        assert [f.payload for f in frames] == ["hello"]
        assert residual == ""

    def test_multiple_frames_in_wire_order(self):
        frames, residual = split_frames("data: a\n\ndata: b\n\ndata: c\n\n")
        assert [f.payload for f in frames] == ["a", "b", "c"]
        assert residual == ""

    def test_trailing_partial_frame_kept_as_residual(self):
        frames, residual = split_frames("data: a\n\ndata: par")
        assert [f.payload for f in frames] == ["a"]
        assert residual == "data: par"

    def test_no_boundary_is_idempotent(self):
        buffer = "data: no boundary yet\nid: 4"
        frames, residual = split_frames(buffer)
        assert frames == []
        assert residual == buffer

    def test_empty_buffer(self):
        assert split_frames("") == ([], "")

    def test_half_boundary_stays_in_residual(self):
        frames, residual = split_frames("data: a\n")
        assert frames == []
        assert residual == "data: a\n"

        frames, residual = split_frames(residual + "\ndata: b")
        assert [f.payload for f in frames] == ["a"]
        assert residual == "data: b"

    def test_crlf_line_endings(self):
        frames, residual = split_frames("data: a\r\n\r\ndata: b\r\n\r\n")
        assert [f.payload for f in frames] == ["a", "b"]
        assert residual == ""


# ── Fragmentation invariance ──────────────────────────────────────


class TestFragmentation:
    @pytest.mark.parametrize("offset", range(len(_WIRE) + 1))
    def test_any_two_way_split(self, offset):
        payloads, residual = _feed([_WIRE[:offset], _WIRE[offset:]])
        assert payloads == ["Hel", "lo", "World"]
        assert residual == ""

    def test_one_character_at_a_time(self):
        payloads, residual = _feed(list(_WIRE))
        assert payloads == ["Hel", "lo", "World"]
        assert residual == ""

    @pytest.mark.parametrize("offset", range(len("data: x\r\n\r\ndata: y\r\n\r\n") + 1))
    def test_crlf_split_anywhere(self, offset):
        wire = "data: x\r\n\r\ndata: y\r\n\r\n"
        payloads, residual = _feed([wire[:offset], wire[offset:]])
        assert payloads == ["x", "y"]
        assert residual == ""

    def test_split_chunks_scenario(self):
        chunks = ["data: Hel", "lo\n\ndata: Wor", "ld\n\n"]
        buffer = ""
        progression: list[str] = []
        accumulated = ""
        for chunk in chunks:
            payloads, buffer = extract_payloads(buffer + chunk)
            for payload in payloads:
                accumulated += payload
                progression.append(accumulated)
        assert progression == ["Hello", "HelloWorld"]


# ── parse_frame ───────────────────────────────────────────────────


class TestParseFrame:
    def test_strips_prefix_and_one_space(self):
        assert parse_frame("data: value").payload == "value"

    def test_no_space_after_prefix(self):
        assert parse_frame("data:value").payload == "value"

    def test_extra_leading_spaces_are_content(self):
        assert parse_frame("data:   indented").payload == "  indented"

    def test_multi_line_payload_joined_with_newline(self):
        frame = parse_frame("data: line one\ndata: line two\ndata: line three")
        assert frame.payload == "line one\nline two\nline three"

    def test_empty_data_line_is_empty_payload(self):
        frame = parse_frame("data:")
        assert frame.payload == ""

    def test_comment_only_frame_has_no_payload(self):
        frame = parse_frame(": keepalive")
        assert frame.payload is None
        assert frame.anomalies == 0

    def test_other_fields_ignored(self):
        frame = parse_frame("event: delta\nid: 7\ndata: x\nretry: 1000")
        assert frame.data_lines == ("x",)

    def test_malformed_line_counted_and_skipped(self):
        frame = parse_frame("garbage\ndata: ok")
        assert frame.anomalies == 1
        assert frame.payload == "ok"

    def test_raw_preserved(self):
        raw = "event: x\ndata: y"
        assert parse_frame(raw).raw == raw


class TestExtractPayloads:
    def test_skips_frames_without_data(self):
        payloads, residual = extract_payloads(": ping\n\nevent: noop\n\ndata: real\n\n")
        assert payloads == ["real"]
        assert residual == ""

    def test_malformed_frame_does_not_stop_later_frames(self):
        payloads, _ = extract_payloads("oops\n\ndata: after\n\n")
        assert payloads == ["after"]


class TestDecodeJsonPayload:
    def test_valid_json(self):
        assert decode_json_payload('{"title": "Kitchen", "rooms": 2}') == {
            "title": "Kitchen",
            "rooms": 2,
        }

    def test_invalid_json_raises_anomaly(self):
        with pytest.raises(FrameDecodeAnomaly, match="Invalid JSON payload"):
            decode_json_payload("{not json")
