from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


class ConfigValidationError(ValueError):
    """Raised when a ReconcileConfig field has an invalid value."""


def _check_range(
    name: str, value: float, lo: float, hi: float, *, inclusive: bool = True
) -> None:
    if inclusive:
        if not (lo <= value <= hi):
            raise ConfigValidationError(f"{name}={value} out of range [{lo}, {hi}]")
    else:
        if not (lo < value < hi):
            raise ConfigValidationError(f"{name}={value} out of range ({lo}, {hi})")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name}={value} must be > 0")


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ConfigValidationError(f"{name}={value} must be >= 0")


@dataclass
class ReconcileConfig:
    """Tunables for stroke association and block reconciliation."""

    # Margin (stroke units) added above and below a recognized line's bounds
    # before testing stroke points. Keep below the usual inter-line gap.
    line_tolerance: float = 1.5
    # Joiner used when several lines are recombined into one block.
    combine_separator: str = " "
    # Legacy fallback: minimum vertical overlap (stroke units) between a
    # block's bounds hint and a line's bounds to count as a match.
    bounds_overlap_min: float = 0.0

    # ── Recognition response parsing ──────────────────────────────────
    # One indent level spans this many median word heights.
    indent_unit_mult: float = 1.5
    # Word height used when the recognizer reports no word boxes.
    default_word_height: float = 20.0

    # ── Block store layout ─────────────────────────────────────────────
    # Heading of the section that holds top-level transcript blocks.
    section_title: str = "## Transcribed Content"
    # Heading of the section that holds the raw stroke JSON.
    stroke_section_title: str = "## Raw Stroke Data"
    # Decimal places kept in the stroke-y-bounds property.
    bounds_precision: int = 2

    def __post_init__(self) -> None:
        """Validate field ranges to catch misconfiguration early."""
        _check_non_negative("line_tolerance", self.line_tolerance)
        _check_non_negative("bounds_overlap_min", self.bounds_overlap_min)

        for name in ("indent_unit_mult", "default_word_height"):
            _check_positive(name, getattr(self, name))

        _check_range("bounds_precision", self.bounds_precision, 0, 6)

        if not self.combine_separator:
            raise ConfigValidationError("combine_separator must not be empty")
        for name in ("section_title", "stroke_section_title"):
            if not getattr(self, name).strip():
                raise ConfigValidationError(f"{name} must not be blank")
        if self.section_title.strip() == self.stroke_section_title.strip():
            raise ConfigValidationError(
                "section_title and stroke_section_title must differ"
            )


@dataclass
class ServiceSettings:
    """Connection settings for the remote block store and recognizer."""

    logseq_host: str = "http://127.0.0.1:12315"
    logseq_token: str = ""
    myscript_app_key: str = ""
    myscript_hmac_key: str = ""
    http_timeout_s: float = 30.0
    recognition_lang: str = "en_US"

    def __post_init__(self) -> None:
        _check_positive("http_timeout_s", self.http_timeout_s)
        self.logseq_host = self.logseq_host.rstrip("/")

    @property
    def has_recognizer_credentials(self) -> bool:
        return bool(self.myscript_app_key and self.myscript_hmac_key)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "ServiceSettings":
        """Build settings from ``INKBRIDGE_*`` environment variables.

        A ``.env`` file is loaded first (without overriding variables that
        are already set).
        """
        load_dotenv(dotenv_path)
        try:
            timeout = float(os.getenv("INKBRIDGE_HTTP_TIMEOUT_S", "30"))
        except ValueError as exc:
            raise ConfigValidationError(
                f"INKBRIDGE_HTTP_TIMEOUT_S is not a number: {exc}"
            ) from exc
        return cls(
            logseq_host=(
                os.getenv("INKBRIDGE_LOGSEQ_HOST") or "http://127.0.0.1:12315"
            ).strip(),
            logseq_token=(os.getenv("INKBRIDGE_LOGSEQ_TOKEN") or "").strip(),
            myscript_app_key=(os.getenv("INKBRIDGE_MYSCRIPT_APP_KEY") or "").strip(),
            myscript_hmac_key=(os.getenv("INKBRIDGE_MYSCRIPT_HMAC_KEY") or "").strip(),
            http_timeout_s=timeout,
            recognition_lang=(
                os.getenv("INKBRIDGE_RECOGNITION_LANG") or "en_US"
            ).strip(),
        )
