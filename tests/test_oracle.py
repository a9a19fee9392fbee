"""Tests for inkbridge.oracle.base — replay oracle and response parsing."""

from conftest import buy_milk_strokes, two_lines
from inkbridge.models import Bounds
from inkbridge.oracle.base import (
    RecognitionOracle,
    ReplayOracle,
    RequestFrame,
    parse_recognition_response,
)


def _word(label, x, y, w=20.0, h=10.0):
    return {"label": label, "bounding-box": {"x": x, "y": y, "width": w, "height": h}}


def _payload():
    return {
        "label": "Buy milk\nCall Sam\n  soy",
        "words": [
            _word("Buy", 10, 10),
            {"label": " "},
            _word("milk", 35, 10, w=25),
            {"label": "\n"},
            _word("Call", 10, 40),
            {"label": " "},
            _word("Sam", 35, 40),
            {"label": "\n"},
            _word("soy", 25, 70),
        ],
    }


class TestReplayOracle:
    def test_returns_lines_and_records_batches(self):
        oracle = ReplayOracle(two_lines())
        assert isinstance(oracle, RecognitionOracle)
        assert [ln.text for ln in oracle.recognize(buy_milk_strokes())] == [
            "Buy milk",
            "Call Sam",
        ]
        assert oracle.requests == [[s.stroke_id for s in buy_milk_strokes()]]

    def test_callable(self):
        oracle = ReplayOracle(lambda strokes: two_lines()[: len(strokes)])
        assert len(oracle.recognize(buy_milk_strokes()[:1])) == 1


class TestRequestFrame:
    def test_inverse_mapping(self):
        frame = RequestFrame(min_x=5.0, min_y=100.0, scale=2.0, padding=10.0)
        assert frame.to_stroke_x(10.0) == 5.0
        assert frame.to_stroke_y(30.0) == 110.0


class TestParseResponse:
    def test_lines_text_and_bounds(self):
        lines = parse_recognition_response(_payload())
        assert [ln.text for ln in lines] == ["Buy milk", "Call Sam", "soy"]
        assert [ln.index for ln in lines] == [0, 1, 2]
        assert lines[0].bounds == Bounds(10, 20)
        assert lines[1].bounds == Bounds(40, 50)
        assert lines[0].canonical == "Buy milk"

    def test_indent_and_parents(self):
        lines = parse_recognition_response(_payload())
        assert [ln.indent_level for ln in lines] == [0, 0, 1]
        assert [ln.parent_index for ln in lines] == [None, None, 1]
        assert lines[2].indent_x == 25.0

    def test_frame_maps_back_to_stroke_units(self):
        frame = RequestFrame(min_x=0.0, min_y=100.0, scale=2.0, padding=10.0)
        lines = parse_recognition_response(_payload(), frame)
        assert lines[0].bounds == Bounds(100.0, 105.0)

    def test_canonical_drops_task_marker(self):
        payload = {
            "label": "TODO call",
            "words": [_word("TODO", 0, 0), _word("call", 30, 0)],
        }
        (line,) = parse_recognition_response(payload)
        assert line.text == "TODO call"
        assert line.canonical == "call"

    def test_line_without_boxes(self):
        (line,) = parse_recognition_response({"label": "hello", "words": []})
        assert line.bounds is None
        assert line.indent_level == 0

    def test_empty(self):
        assert parse_recognition_response({}) == []
        assert parse_recognition_response({"label": "\n\n"}) == []
