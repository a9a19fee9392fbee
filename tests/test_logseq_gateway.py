"""Tests for inkbridge.gateway.logseq — Logseq HTTP API block store."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from conftest import PAGE, buy_milk_strokes
from inkbridge.config import ServiceSettings
from inkbridge.gateway.base import GatewayReadFailure, GatewayWriteFailure
from inkbridge.gateway.logseq import (
    LogseqGateway,
    format_json_block,
    parse_json_block,
)
from inkbridge.strokes.storage import build_page_storage_object
from inkbridge.strokes.store import StrokeStore


def _response(payload):
    r = MagicMock()
    r.raise_for_status.return_value = None
    r.content = b"" if payload is None else json.dumps(payload).encode()
    r.json.return_value = payload
    return r


def _tree(stroke_json=None):
    stroke_children = []
    if stroke_json is not None:
        stroke_children.append({"uuid": "json-1", "content": stroke_json})
    return [
        {
            "uuid": "sec-strokes",
            "content": "## Raw Stroke Data",
            "children": stroke_children,
        },
        {
            "uuid": "sec-text",
            "content": "## Transcribed Content",
            "children": [
                {
                    "uuid": "u1",
                    "content": (
                        "TODO Buy milk\nstroke-y-bounds:: 0-10\n"
                        "canonical-transcript:: Buy milk"
                    ),
                    "properties": {
                        "strokeYBounds": "0-10",
                        "canonicalTranscript": "Buy milk",
                    },
                    "children": [{"uuid": "u2", "content": "soy", "properties": {}}],
                }
            ],
        },
    ]


class FakeLogseq:
    """Session stand-in answering API methods from a handler table."""

    def __init__(self, **handlers):
        self.handlers = handlers
        self.calls = []
        self.headers = []
        self.session = MagicMock()
        self.session.post.side_effect = self._post

    def _post(self, url, json=None, headers=None, timeout=None):
        assert url == "http://127.0.0.1:12315/api"
        self.calls.append((json["method"], json["args"]))
        self.headers.append(headers)
        handler = self.handlers.get(json["method"])
        payload = handler(*json["args"]) if callable(handler) else handler
        return _response(payload)

    def methods(self):
        return [m for m, _ in self.calls]


def _gateway(fake, token=""):
    return LogseqGateway(ServiceSettings(logseq_token=token), session=fake.session)


class TestJsonBlock:
    def test_round_trip(self):
        assert parse_json_block(format_json_block({"a": 1})) == {"a": 1}

    def test_missing_or_invalid(self):
        assert parse_json_block("no fence") is None
        assert parse_json_block("```json\n{broken\n```") is None
        assert parse_json_block("```json\n[1, 2]\n```") is None


class TestListBlocks:
    def test_flattens_section(self):
        fake = FakeLogseq(**{"logseq.Editor.getPageBlocksTree": _tree()})
        blocks = _gateway(fake).list_blocks(PAGE)
        assert [b.block_id for b in blocks] == ["u1", "u2"]
        first, child = blocks
        assert first.content == "TODO Buy milk"
        assert first.canonical_snapshot == "Buy milk"
        assert first.bounds_hint.to_property() == "0-10"
        assert first.parent_id is None
        assert child.parent_id == "u1"

    def test_missing_section(self):
        fake = FakeLogseq(**{"logseq.Editor.getPageBlocksTree": []})
        assert _gateway(fake).list_blocks(PAGE) == []

    def test_transport_error_is_read_failure(self):
        fake = FakeLogseq()
        fake.session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(GatewayReadFailure, match="refused"):
            _gateway(fake).list_blocks(PAGE)

    def test_bearer_token(self):
        fake = FakeLogseq(**{"logseq.Editor.getPageBlocksTree": []})
        _gateway(fake, token="tok").list_blocks(PAGE)
        assert fake.headers[0]["Authorization"] == "Bearer tok"


class TestWrites:
    def test_create_top_level_goes_into_section(self):
        fake = FakeLogseq(
            **{
                "logseq.Editor.getPageBlocksTree": _tree(),
                "logseq.Editor.insertBlock": {"uuid": "u9"},
            }
        )
        props = {"canonical-transcript": "Call Sam", "stroke-y-bounds": "20-30"}
        block = _gateway(fake).create_block(PAGE, None, "Call Sam", props)
        assert block.block_id == "u9"
        assert block.canonical_snapshot == "Call Sam"
        method, args = fake.calls[-1]
        assert method == "logseq.Editor.insertBlock"
        assert args == [
            "sec-text",
            "Call Sam",
            {"sibling": False, "properties": props},
        ]

    def test_create_child_targets_parent(self):
        fake = FakeLogseq(**{"logseq.Editor.insertBlock": {"uuid": "u9"}})
        block = _gateway(fake).create_block(PAGE, "u1", "oat", {})
        assert block.parent_id == "u1"
        assert fake.methods() == ["logseq.Editor.insertBlock"]
        assert fake.calls[0][1][0] == "u1"

    def test_create_makes_page_and_section(self):
        fake = FakeLogseq(
            **{
                "logseq.Editor.getPageBlocksTree": [],
                "logseq.Editor.getPage": None,
                "logseq.Editor.createPage": {"id": 1},
                "logseq.Editor.appendBlockInPage": {"uuid": "sec-new"},
                "logseq.Editor.insertBlock": {"uuid": "u9"},
            }
        )
        _gateway(fake).create_block(PAGE, None, "Buy milk", {})
        assert fake.methods() == [
            "logseq.Editor.getPageBlocksTree",
            "logseq.Editor.getPage",
            "logseq.Editor.createPage",
            "logseq.Editor.appendBlockInPage",
            "logseq.Editor.insertBlock",
        ]
        create_args = fake.calls[2][1]
        assert create_args[1] == {"book": "3017", "page": "42"}
        assert fake.calls[-1][1][0] == "sec-new"

    def test_create_without_uuid_fails(self):
        fake = FakeLogseq(**{"logseq.Editor.insertBlock": None})
        with pytest.raises(GatewayWriteFailure):
            _gateway(fake).create_block(PAGE, "u1", "oat", {})

    def test_update_and_delete(self):
        fake = FakeLogseq()
        gw = _gateway(fake)
        gw.update_block_content("u1", "Buy oat milk", {"canonical-transcript": "x"})
        gw.delete_block("u2")
        assert fake.calls == [
            (
                "logseq.Editor.updateBlock",
                ["u1", "Buy oat milk", {"properties": {"canonical-transcript": "x"}}],
            ),
            ("logseq.Editor.removeBlock", ["u2"]),
        ]

    def test_http_error_is_write_failure(self):
        fake = FakeLogseq()
        bad = _response(None)
        bad.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        fake.session.post.side_effect = None
        fake.session.post.return_value = bad
        with pytest.raises(GatewayWriteFailure, match="removeBlock"):
            _gateway(fake).delete_block("u2")


class TestStrokes:
    def _stored(self):
        store = StrokeStore([s.with_block("u1") for s in buy_milk_strokes()])
        return format_json_block(build_page_storage_object({}, store))

    def test_read(self):
        fake = FakeLogseq(
            **{"logseq.Editor.getPageBlocksTree": _tree(self._stored())}
        )
        store = _gateway(fake).read_strokes(PAGE)
        assert len(store.stroke_ids_for_block("u1")) == 5

    def test_read_without_data(self):
        fake = FakeLogseq(**{"logseq.Editor.getPageBlocksTree": _tree()})
        assert len(_gateway(fake).read_strokes(PAGE)) == 0

    def test_read_bad_version(self):
        data = format_json_block({"version": "9.0", "strokes": []})
        fake = FakeLogseq(**{"logseq.Editor.getPageBlocksTree": _tree(data)})
        with pytest.raises(GatewayReadFailure, match="version"):
            _gateway(fake).read_strokes(PAGE)

    def test_write_updates_existing_block(self):
        fake = FakeLogseq(
            **{"logseq.Editor.getPageBlocksTree": _tree(self._stored())}
        )
        _gateway(fake).write_strokes(PAGE, StrokeStore(buy_milk_strokes()))
        method, args = fake.calls[-1]
        assert method == "logseq.Editor.updateBlock"
        assert args[0] == "json-1"
        written = parse_json_block(args[1])
        assert written["pageInfo"]["book"] == 3017
        assert written["metadata"]["strokeCount"] == 5

    def test_write_inserts_into_empty_section(self):
        fake = FakeLogseq(**{"logseq.Editor.getPageBlocksTree": _tree()})
        _gateway(fake).write_strokes(PAGE, StrokeStore(buy_milk_strokes()))
        method, args = fake.calls[-1]
        assert method == "logseq.Editor.insertBlock"
        assert args[0] == "sec-strokes"
        assert args[2] == {"sibling": False}


class TestConnection:
    def test_reachable(self):
        fake = FakeLogseq(**{"logseq.App.getCurrentGraph": {"name": "notes"}})
        assert _gateway(fake).test_connection() is True

    def test_unreachable(self):
        fake = FakeLogseq()
        fake.session.post.side_effect = requests.Timeout("slow")
        assert _gateway(fake).test_connection() is False
