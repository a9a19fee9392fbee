"""In-process block store.

Keeps blocks and stroke records in dictionaries, round-tripping everything
through the same serialized forms a remote store would see.  Failures can
be injected per operation, per block id or per created content, which is
how partial-failure behaviour is exercised.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Dict, List, Optional, Set, Tuple

from ..models import AnnotationBlock
from ..strokes.store import StrokeStore
from .base import GatewayReadFailure, GatewayWriteFailure, PersistenceGateway

log = logging.getLogger(__name__)


class InMemoryGateway(PersistenceGateway):
    """Dictionary-backed :class:`PersistenceGateway`."""

    def __init__(self) -> None:
        self._pages: Dict[str, List[str]] = {}
        self._blocks: Dict[str, Tuple[str, dict]] = {}
        self._strokes: Dict[str, List[dict]] = {}
        self.calls: List[Tuple[str, str]] = []
        # Failure injection.
        self.fail_ops: Set[str] = set()
        self.fail_block_ids: Set[str] = set()
        self.fail_contents: Set[str] = set()

    # ── Seeding / inspection ──────────────────────────────────────────

    def seed_block(self, page_id: str, block: AnnotationBlock) -> None:
        """Insert an existing block as if it had been stored earlier."""
        self._pages.setdefault(page_id, []).append(block.block_id)
        self._blocks[block.block_id] = (page_id, block.to_dict())

    def seed_strokes(self, page_id: str, strokes: StrokeStore) -> None:
        self._strokes[page_id] = copy.deepcopy(strokes.to_records())

    def block(self, block_id: str) -> AnnotationBlock:
        return AnnotationBlock.from_dict(self._blocks[block_id][1])

    def has_block(self, block_id: str) -> bool:
        return block_id in self._blocks

    def _check(self, op: str, block_id: str = "") -> None:
        self.calls.append((op, block_id))
        if op in self.fail_ops or (block_id and block_id in self.fail_block_ids):
            if op.startswith(("list", "read")):
                raise GatewayReadFailure(f"injected {op} failure for {block_id!r}")
            raise GatewayWriteFailure(f"injected {op} failure for {block_id!r}")

    # ── PersistenceGateway ────────────────────────────────────────────

    def list_blocks(self, page_id: str) -> List[AnnotationBlock]:
        self._check("list_blocks", page_id)
        return [
            AnnotationBlock.from_dict(self._blocks[bid][1])
            for bid in self._pages.get(page_id, [])
        ]

    def create_block(
        self,
        page_id: str,
        parent_id: Optional[str],
        content: str,
        properties: Dict[str, str],
    ) -> AnnotationBlock:
        self._check("create_block", page_id)
        if content in self.fail_contents:
            raise GatewayWriteFailure(f"injected create failure for {content!r}")
        if parent_id is not None and parent_id not in self._blocks:
            raise GatewayWriteFailure(f"parent block {parent_id!r} does not exist")
        block_id = str(uuid.uuid4())
        block = AnnotationBlock.from_properties(
            block_id, content, properties, parent_id
        )
        self._pages.setdefault(page_id, []).append(block_id)
        self._blocks[block_id] = (page_id, block.to_dict())
        log.debug("created block %s on %s", block_id, page_id)
        return block

    def update_block_content(
        self, block_id: str, content: str, properties: Dict[str, str]
    ) -> None:
        self._check("update_block_content", block_id)
        if block_id not in self._blocks:
            raise GatewayWriteFailure(f"unknown block {block_id!r}")
        page_id, data = self._blocks[block_id]
        data = dict(data, content=content, properties=dict(properties))
        self._blocks[block_id] = (page_id, data)

    def delete_block(self, block_id: str) -> None:
        self._check("delete_block", block_id)
        if block_id not in self._blocks:
            raise GatewayWriteFailure(f"unknown block {block_id!r}")
        page_id, _ = self._blocks.pop(block_id)
        self._pages[page_id].remove(block_id)
        for bid, (pid, data) in list(self._blocks.items()):
            if data.get("parent") == block_id:
                data = dict(data)
                data.pop("parent")
                self._blocks[bid] = (pid, data)

    def read_strokes(self, page_id: str) -> StrokeStore:
        self._check("read_strokes", page_id)
        return StrokeStore.from_records(copy.deepcopy(self._strokes.get(page_id, [])))

    def write_strokes(self, page_id: str, strokes: StrokeStore) -> None:
        self._check("write_strokes", page_id)
        self._strokes[page_id] = copy.deepcopy(strokes.to_records())
