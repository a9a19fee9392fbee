"""Handwriting recognition collaborators."""

from .base import (
    OracleFailure,
    RecognitionOracle,
    ReplayOracle,
    RequestFrame,
    parse_recognition_response,
)
from .myscript import MyScriptOracle, sign_request, strokes_to_request

__all__ = [
    "MyScriptOracle",
    "OracleFailure",
    "RecognitionOracle",
    "ReplayOracle",
    "RequestFrame",
    "parse_recognition_response",
    "sign_request",
    "strokes_to_request",
]
