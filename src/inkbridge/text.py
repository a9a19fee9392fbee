"""Text normalisation and content regeneration for transcript blocks.

Public API
----------
canonicalize          – normal form used to decide "nothing changed"
split_task_marker     – separate a leading TODO/DONE/[ ] marker from text
preserve_decorations  – rebuild block content from new recognized text while
                        keeping what the user added by hand
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .models import BOUNDS_PROPERTY, CANONICAL_PROPERTY

TASK_MARKERS = ("TODO", "DONE", "LATER", "NOW", "DOING", "WAITING", "CANCELED")

_RE_MARKER = re.compile(
    r"^\s*(?P<marker>(?:%s)\b|\[[ xX]\])\s*" % "|".join(TASK_MARKERS)
)
_RE_WS = re.compile(r"\s+")
_RE_PROPERTY_LINE = re.compile(r"^\s*(?P<key>[A-Za-z0-9_\-]+)::\s?(?P<value>.*)$")
_RE_DECORATION = re.compile(r"(#\[\[[^\]]+\]\]|#[^\s#\[\]]+|\[\[[^\]]+\]\])")

MANAGED_PROPERTIES = (BOUNDS_PROPERTY, CANONICAL_PROPERTY)


def split_task_marker(text: str) -> Tuple[Optional[str], str]:
    """Return ``(marker, rest)``; *marker* is None when the text has none."""
    m = _RE_MARKER.match(text or "")
    if not m:
        return None, text or ""
    return m.group("marker"), text[m.end() :]


def canonicalize(text: str) -> str:
    """Normal form of recognized text used for equality checks.

    Task markers are dropped and whitespace is collapsed; letter case
    and punctuation are kept because they are part of what was written.
    """
    _, rest = split_task_marker(text or "")
    return _RE_WS.sub(" ", rest).strip()


def combine_text(parts: List[str], separator: str = " ") -> str:
    """Join non-blank parts with *separator*."""
    return separator.join(p.strip() for p in parts if p and p.strip())


def _split_content(content: str) -> Tuple[List[str], List[str]]:
    """Separate body lines from ``key:: value`` property lines."""
    body: List[str] = []
    props: List[str] = []
    for line in (content or "").splitlines():
        if _RE_PROPERTY_LINE.match(line):
            props.append(line.strip())
        else:
            body.append(line)
    return body, props


def strip_managed_properties(content: str) -> str:
    """Remove the property lines the reconciler maintains itself."""
    keep = []
    for line in (content or "").splitlines():
        m = _RE_PROPERTY_LINE.match(line)
        if m and m.group("key") in MANAGED_PROPERTIES:
            continue
        keep.append(line)
    return "\n".join(keep).strip("\n")


def preserve_decorations(old_content: str, new_text: str) -> str:
    """Regenerate block content from *new_text*, keeping user additions.

    Kept from *old_content*:

    * a leading task marker (``TODO``, ``DONE``, ``[x]`` …) unless the
      new text already starts with one,
    * ``#tag``, ``#[[tag]]`` and ``[[page link]]`` tokens the new text does
      not already contain, appended in their original order,
    * user property lines (``key:: value``) other than the managed ones.
    """
    new_text = (new_text or "").strip()
    body, props = _split_content(old_content or "")
    old_body = " ".join(line.strip() for line in body if line.strip())

    old_marker, _ = split_task_marker(old_body)
    new_marker, _ = split_task_marker(new_text)

    out = new_text
    if old_marker and not new_marker:
        out = f"{old_marker} {out}".strip()

    extras = []
    for token in _RE_DECORATION.findall(old_body):
        if token not in out and token not in extras:
            extras.append(token)
    if extras:
        out = f"{out} {' '.join(extras)}".strip()

    user_props = []
    for line in props:
        m = _RE_PROPERTY_LINE.match(line)
        if m and m.group("key") not in MANAGED_PROPERTIES:
            user_props.append(line)
    if user_props:
        out = "\n".join([out] + user_props)
    return out
