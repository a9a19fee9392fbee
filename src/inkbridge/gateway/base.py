"""Persistence gateway contract for transcript blocks and stroke records.

A gateway stores two things per page:

* transcript blocks – id, content, parent id and two properties
  (``stroke-y-bounds`` and ``canonical-transcript``);
* stroke records – geometry plus ``blockRef``; the stroke records, not
  the blocks, are the authoritative record of which strokes make up a
  block.

Read failures abort a pass; write failures are isolated per action.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from ..models import AnnotationBlock
from ..strokes.store import StrokeStore


class GatewayError(Exception):
    """Base class for block-store failures."""


class GatewayReadFailure(GatewayError):
    """Existing blocks or strokes could not be read."""


class GatewayWriteFailure(GatewayError):
    """A single create / update / delete / stroke write did not commit."""


class PersistenceGateway:
    """Interface every block store implements."""

    def list_blocks(self, page_id: str) -> List[AnnotationBlock]:
        """Transcript blocks of *page_id* in creation order."""
        raise NotImplementedError

    def create_block(
        self,
        page_id: str,
        parent_id: Optional[str],
        content: str,
        properties: Dict[str, str],
    ) -> AnnotationBlock:
        """Create a block (top-level when *parent_id* is None) and return it."""
        raise NotImplementedError

    def update_block_content(
        self, block_id: str, content: str, properties: Dict[str, str]
    ) -> None:
        raise NotImplementedError

    def delete_block(self, block_id: str) -> None:
        raise NotImplementedError

    def read_strokes(self, page_id: str) -> StrokeStore:
        """Stored strokes of *page_id*, ``block_ref`` and tombstones included."""
        raise NotImplementedError

    def write_strokes(self, page_id: str, strokes: StrokeStore) -> None:
        """Replace the stored strokes of *page_id* with *strokes*."""
        raise NotImplementedError
