"""Block store backed by a Logseq graph over its HTTP API.

Every call is a ``POST {host}/api`` with ``{"method": ..., "args": [...]}``
and an optional bearer token.  Layout of one notebook page::

    Smartpen Data/B3017/P42
    ├── ## Raw Stroke Data
    │   └── ```json {page storage object} ```
    └── ## Transcribed Content
        ├── Buy milk            stroke-y-bounds:: 0-10
        │                       canonical-transcript:: Buy milk
        └── Call Sam
            └── nested line …

Transport errors, non-2xx responses and undecodable bodies surface as
:class:`GatewayReadFailure` or :class:`GatewayWriteFailure` depending on the
operation.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Type

import requests

from ..config import ReconcileConfig, ServiceSettings
from ..models import BOUNDS_PROPERTY, CANONICAL_PROPERTY, AnnotationBlock
from ..strokes.storage import build_page_storage_object, parse_page_storage_object
from ..strokes.store import StrokeStore
from ..text import strip_managed_properties
from .base import (
    GatewayError,
    GatewayReadFailure,
    GatewayWriteFailure,
    PersistenceGateway,
)

log = logging.getLogger(__name__)

_RE_JSON_FENCE = re.compile(r"```(?:json)?\n([\s\S]*?)\n```")
_RE_PAGE_NAME = re.compile(r"/B(?P<book>\d+)/P(?P<page>\d+)$")

# Logseq reports property keys in camelCase.
_PROPERTY_ALIASES = {
    "strokeYBounds": BOUNDS_PROPERTY,
    "canonicalTranscript": CANONICAL_PROPERTY,
}


def parse_json_block(content: str) -> Optional[dict]:
    """Extract the JSON object from a fenced code block; None if absent."""
    m = _RE_JSON_FENCE.search(content or "")
    if not m:
        return None
    try:
        data = json.loads(m.group(1))
    except json.JSONDecodeError:
        log.warning("stroke data block holds invalid JSON")
        return None
    return data if isinstance(data, dict) else None


def format_json_block(data: dict) -> str:
    return "```json\n" + json.dumps(data, indent=2) + "\n```"


def _normalize_properties(props: Optional[dict]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, value in (props or {}).items():
        key = _PROPERTY_ALIASES.get(key, key)
        out[key] = "" if value is None else str(value)
    return out


class LogseqGateway(PersistenceGateway):
    """:class:`PersistenceGateway` talking to a Logseq HTTP API server."""

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        cfg: Optional[ReconcileConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or ServiceSettings()
        self.cfg = cfg or ReconcileConfig()
        self.session = session or requests.Session()

    # ── Transport ─────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        args: List[Any],
        failure: Type[GatewayError] = GatewayWriteFailure,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.settings.logseq_token:
            headers["Authorization"] = f"Bearer {self.settings.logseq_token}"
        url = f"{self.settings.logseq_host}/api"
        try:
            r = self.session.post(
                url,
                json={"method": method, "args": args},
                headers=headers,
                timeout=self.settings.http_timeout_s,
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise failure(f"{method} failed: {exc}") from exc
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise failure(f"{method} returned a non-JSON body") from exc

    def test_connection(self) -> bool:
        try:
            graph = self._request(
                "logseq.App.getCurrentGraph", [], failure=GatewayReadFailure
            )
        except GatewayReadFailure as exc:
            log.info("Logseq not reachable: %s", exc)
            return False
        return graph is not None

    # ── Page layout helpers ───────────────────────────────────────────

    def _ensure_page(self, page_id: str) -> None:
        page = self._request("logseq.Editor.getPage", [page_id])
        if page:
            return
        m = _RE_PAGE_NAME.search(page_id)
        props = {"book": m.group("book"), "page": m.group("page")} if m else {}
        self._request(
            "logseq.Editor.createPage",
            [page_id, props, {"createFirstBlock": False, "redirect": False}],
        )

    def _page_tree(self, page_id: str, failure: Type[GatewayError]) -> List[dict]:
        tree = self._request("logseq.Editor.getPageBlocksTree", [page_id], failure)
        return tree if isinstance(tree, list) else []

    @staticmethod
    def _find_section(tree: List[dict], title: str) -> Optional[dict]:
        for block in tree:
            if (block.get("content") or "").strip().startswith(title):
                return block
        return None

    def _section_uuid(self, page_id: str, title: str) -> str:
        """Uuid of the *title* section on *page_id*, created when missing."""
        tree = self._page_tree(page_id, GatewayWriteFailure)
        section = self._find_section(tree, title)
        if section is not None:
            return section["uuid"]
        self._ensure_page(page_id)
        created = self._request(
            "logseq.Editor.appendBlockInPage", [page_id, title, {}]
        )
        if not created or "uuid" not in created:
            raise GatewayWriteFailure(
                f"could not create section {title!r} on {page_id}"
            )
        return created["uuid"]

    def _flatten(
        self, children: List[dict], parent_id: Optional[str], out: List[AnnotationBlock]
    ) -> None:
        for child in children:
            if "uuid" not in child:
                continue
            out.append(
                AnnotationBlock.from_properties(
                    child["uuid"],
                    strip_managed_properties(child.get("content") or ""),
                    _normalize_properties(child.get("properties")),
                    parent_id,
                )
            )
            self._flatten(child.get("children") or [], child["uuid"], out)

    # ── PersistenceGateway ────────────────────────────────────────────

    def list_blocks(self, page_id: str) -> List[AnnotationBlock]:
        tree = self._page_tree(page_id, GatewayReadFailure)
        section = self._find_section(tree, self.cfg.section_title)
        blocks: List[AnnotationBlock] = []
        if section is not None:
            self._flatten(section.get("children") or [], None, blocks)
        log.debug("%s: %d transcript blocks", page_id, len(blocks))
        return blocks

    def create_block(
        self,
        page_id: str,
        parent_id: Optional[str],
        content: str,
        properties: Dict[str, str],
    ) -> AnnotationBlock:
        target = parent_id or self._section_uuid(page_id, self.cfg.section_title)
        created = self._request(
            "logseq.Editor.insertBlock",
            [target, content, {"sibling": False, "properties": properties}],
        )
        if not created or "uuid" not in created:
            raise GatewayWriteFailure(f"insertBlock returned no block for {page_id}")
        return AnnotationBlock.from_properties(
            created["uuid"], content, properties, parent_id
        )

    def update_block_content(
        self, block_id: str, content: str, properties: Dict[str, str]
    ) -> None:
        self._request(
            "logseq.Editor.updateBlock",
            [block_id, content, {"properties": properties}],
        )

    def delete_block(self, block_id: str) -> None:
        self._request("logseq.Editor.removeBlock", [block_id])

    def read_strokes(self, page_id: str) -> StrokeStore:
        tree = self._page_tree(page_id, GatewayReadFailure)
        section = self._find_section(tree, self.cfg.stroke_section_title)
        if section is None:
            return StrokeStore()
        for child in section.get("children") or []:
            data = parse_json_block(child.get("content") or "")
            if data is None:
                continue
            try:
                return parse_page_storage_object(data)
            except (KeyError, TypeError, ValueError) as exc:
                raise GatewayReadFailure(
                    f"bad stroke data on {page_id}: {exc}"
                ) from exc
        return StrokeStore()

    def write_strokes(self, page_id: str, strokes: StrokeStore) -> None:
        m = _RE_PAGE_NAME.search(page_id)
        page_info = (
            {"book": int(m.group("book")), "page": int(m.group("page"))} if m else {}
        )
        content = format_json_block(build_page_storage_object(page_info, strokes))

        tree = self._page_tree(page_id, GatewayWriteFailure)
        section = self._find_section(tree, self.cfg.stroke_section_title)
        if section is not None:
            for child in section.get("children") or []:
                if parse_json_block(child.get("content") or "") is not None:
                    self._request("logseq.Editor.updateBlock", [child["uuid"], content])
                    return
            section_uuid = section["uuid"]
        else:
            section_uuid = self._section_uuid(page_id, self.cfg.stroke_section_title)
        self._request(
            "logseq.Editor.insertBlock", [section_uuid, content, {"sibling": False}]
        )
