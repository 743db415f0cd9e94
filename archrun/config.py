"""Configuration for archrun.

Settings come from environment variables so the MCP server and the CLI share
one source of truth. Commit message rules are fixed conventions consumed as
configuration by the sequencer.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .models import KIND_CODE, KIND_DOC, TIER_TESTS


ENV_PROJECT_ROOT = "ARCHRUN_PROJECT_ROOT"
ENV_STORAGE_DIR = "ARCHRUN_STORAGE_DIR"
ENV_DOCS_DIR = "ARCHRUN_DOCS_DIR"
ENV_MATCH_THRESHOLD = "ARCHRUN_MATCH_THRESHOLD"
ENV_INCLUDE_TESTS = "ARCHRUN_INCLUDE_TESTS"
ENV_COMMITTER = "ARCHRUN_COMMITTER"
ENV_LOG_LEVEL = "ARCHRUN_LOG_LEVEL"
ENV_LOG_FILE = "ARCHRUN_LOG_FILE"

DEFAULT_STORAGE_DIR = ".archrun"
DEFAULT_DOCS_DIR = "docs/components"
DEFAULT_MATCH_THRESHOLD = 0.6
COMMITTERS = ("journal", "git")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean, got '{raw}'.")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got '{raw}'.") from None


@dataclass(frozen=True, slots=True)
class CommitConventions:
    """Commit message grammar applied to every sequenced work unit."""

    code_type: str = "feat"
    test_type: str = "test"
    doc_type: str = "docs"
    summary_max_length: int = 72
    type_overrides: Dict[int, str] = field(default_factory=dict)

    def commit_type(self, kind: str, tier: int) -> str:
        if kind == KIND_DOC:
            return self.doc_type
        if tier in self.type_overrides:
            return self.type_overrides[tier]
        if kind == KIND_CODE and tier == TIER_TESTS:
            return self.test_type
        return self.code_type

    def clip_summary(self, summary: str) -> str:
        """Normalize a summary line: single line, no trailing period, bounded length."""
        text = " ".join(summary.split()).rstrip(".")
        if len(text) <= self.summary_max_length:
            return text
        return text[: self.summary_max_length - 3].rstrip() + "..."


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime settings resolved from the environment."""

    project_root: Optional[Path] = None
    storage_dir: str = DEFAULT_STORAGE_DIR
    docs_dir: str = DEFAULT_DOCS_DIR
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    include_tests: bool = True
    committer: str = "journal"
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    conventions: CommitConventions = field(default_factory=CommitConventions)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ARCHRUN_* environment variables."""
        root = os.getenv(ENV_PROJECT_ROOT)
        log_file = os.getenv(ENV_LOG_FILE)
        committer = (os.getenv(ENV_COMMITTER) or "journal").strip().lower()
        if committer not in COMMITTERS:
            raise ValueError(
                f"Environment variable {ENV_COMMITTER} must be one of {', '.join(COMMITTERS)}, got '{committer}'."
            )

        threshold = _env_float(ENV_MATCH_THRESHOLD, DEFAULT_MATCH_THRESHOLD)
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"{ENV_MATCH_THRESHOLD} must be in (0, 1], got {threshold}.")

        log_level = (os.getenv(ENV_LOG_LEVEL) or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"Unknown log level '{log_level}' in {ENV_LOG_LEVEL}.")

        return cls(
            project_root=Path(root).expanduser().resolve() if root else None,
            storage_dir=os.getenv(ENV_STORAGE_DIR) or DEFAULT_STORAGE_DIR,
            docs_dir=os.getenv(ENV_DOCS_DIR) or DEFAULT_DOCS_DIR,
            match_threshold=threshold,
            include_tests=_env_bool(ENV_INCLUDE_TESTS, True),
            committer=committer,
            log_level=log_level,
            log_file=Path(log_file).expanduser() if log_file else None,
        )
