"""MyScript batch recognition over HTTP.

Strokes are converted from pen (Ncode) units to 96-DPI pixels relative to
their joint top-left corner plus a small padding, signed with
HMAC-SHA512, and posted to the batch endpoint.  Returned word boxes are
mapped back into stroke units with the same :class:`RequestFrame`.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import requests

from ..config import ReconcileConfig, ServiceSettings
from ..models import RecognitionLine, Stroke
from .base import (
    OracleFailure,
    RecognitionOracle,
    RequestFrame,
    parse_recognition_response,
)

log = logging.getLogger(__name__)

MYSCRIPT_API_URL = "https://cloud.myscript.com/api/v4.0/iink/batch"

DPI = 96
NCODE_TO_MM = 2.371
NCODE_TO_PIXELS = NCODE_TO_MM * DPI / 25.4
PADDING_PX = 10.0
DEFAULT_PRESSURE = 0.5


def sign_request(app_key: str, hmac_key: str, message: str) -> str:
    """Hex HMAC-SHA512 of *message* keyed with ``app_key + hmac_key``."""
    key = (app_key + hmac_key).encode("utf-8")
    return hmac.new(key, message.encode("utf-8"), hashlib.sha512).hexdigest()


def strokes_to_request(
    strokes: Sequence[Stroke], lang: str = "en_US"
) -> Tuple[Dict[str, Any], RequestFrame]:
    """Batch request body for *strokes* and the frame used to build it."""
    pts = [s.points for s in strokes if len(s.points)]
    if not pts:
        raise OracleFailure("no stroke points to recognize")
    stacked = np.vstack(pts)
    min_x, min_y = float(stacked[:, 0].min()), float(stacked[:, 1].min())
    max_x, max_y = float(stacked[:, 0].max()), float(stacked[:, 1].max())
    frame = RequestFrame(
        min_x=min_x, min_y=min_y, scale=NCODE_TO_PIXELS, padding=PADDING_PX
    )

    groups = []
    for s in strokes:
        if not len(s.points):
            continue
        xs = (s.points[:, 0] - min_x) * NCODE_TO_PIXELS + PADDING_PX
        ys = (s.points[:, 1] - min_y) * NCODE_TO_PIXELS + PADDING_PX
        groups.append(
            {
                "x": [round(float(v), 3) for v in xs],
                "y": [round(float(v), 3) for v in ys],
                "t": [int(v) for v in s.points[:, 2]],
                "p": [DEFAULT_PRESSURE] * len(s.points),
            }
        )

    body = {
        "xDPI": DPI,
        "yDPI": DPI,
        "contentType": "Text",
        "configuration": {
            "lang": lang,
            "text": {
                "guides": {"enable": False},
                "mimeTypes": ["text/plain", "application/vnd.myscript.jiix"],
            },
            "export": {
                "jiix": {
                    "bounding-box": True,
                    "strokes": True,
                    "text": {"chars": True, "words": True},
                }
            },
        },
        "strokeGroups": groups,
        "width": int(math.ceil((max_x - min_x) * NCODE_TO_PIXELS + PADDING_PX * 2)),
        "height": int(math.ceil((max_y - min_y) * NCODE_TO_PIXELS + PADDING_PX * 2)),
    }
    return body, frame


class MyScriptOracle(RecognitionOracle):
    """:class:`RecognitionOracle` backed by the MyScript cloud batch API."""

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        cfg: Optional[ReconcileConfig] = None,
        session: Optional[requests.Session] = None,
        url: str = MYSCRIPT_API_URL,
    ) -> None:
        self.settings = settings or ServiceSettings()
        self.cfg = cfg or ReconcileConfig()
        self.session = session or requests.Session()
        self.url = url

    def recognize(self, strokes: Sequence[Stroke]) -> List[RecognitionLine]:
        if not strokes:
            return []
        if not self.settings.has_recognizer_credentials:
            raise OracleFailure("MyScript credentials are not configured")

        body, frame = strokes_to_request(strokes, self.settings.recognition_lang)
        message = json.dumps(body)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, application/vnd.myscript.jiix",
            "applicationKey": self.settings.myscript_app_key,
            "hmac": sign_request(
                self.settings.myscript_app_key,
                self.settings.myscript_hmac_key,
                message,
            ),
        }
        try:
            r = self.session.post(
                self.url,
                data=message.encode("utf-8"),
                headers=headers,
                timeout=self.settings.http_timeout_s,
            )
        except requests.RequestException as exc:
            raise OracleFailure(f"recognition request failed: {exc}") from exc
        if not r.ok:
            raise OracleFailure(
                f"MyScript API error ({r.status_code}): {r.text[:200]}"
            )
        try:
            payload = r.json()
        except ValueError as exc:
            raise OracleFailure("recognition response is not JSON") from exc
        if not isinstance(payload, dict):
            raise OracleFailure("recognition response is not an object")

        lines = parse_recognition_response(payload, frame, self.cfg)
        log.info("recognized %d lines from %d strokes", len(lines), len(strokes))
        return lines
