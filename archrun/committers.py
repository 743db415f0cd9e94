"""Persist commit descriptors as durable changes.

Two committers ship with archrun: ``JournalCommitter`` only records the
descriptor (the workspace journal is the durable history), ``GitCommitter``
turns each descriptor into exactly one git commit.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from .models import CommitDescriptor, utc_timestamp


logger = logging.getLogger("archrun.committers")


class Committer(Protocol):
    def commit(self, descriptor: CommitDescriptor, files: Sequence[str] = ()) -> Dict[str, Any]:
        ...


class JournalCommitter:
    """Record commits without touching version control."""

    name = "journal"

    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    def commit(self, descriptor: CommitDescriptor, files: Sequence[str] = ()) -> Dict[str, Any]:
        record = {
            "unit_id": descriptor.unit_id,
            "header": descriptor.header,
            "message": descriptor.message,
            "files": list(files),
            "committed_at": utc_timestamp(),
            "committer": self.name,
        }
        self.records.append(record)
        logger.info(f"Recorded commit {descriptor.header}")
        return record


def _run_git(repo_path: Path, args: List[str]) -> Tuple[int, str, str]:
    p = subprocess.run(
        ["git", "--no-pager", *args],
        cwd=str(repo_path),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        env={**os.environ, "GIT_PAGER": "cat", "PAGER": "cat"},
    )
    return p.returncode, (p.stdout or "").strip(), (p.stderr or "").strip()


class GitCommitter:
    """One git commit per descriptor, staging only the unit's own files."""

    name = "git"

    def __init__(self, repo_path: Path | str):
        self.repo_path = Path(repo_path).resolve()

    def ensure_repo(self) -> None:
        """Initialize a repository unless ``repo_path`` already sits inside a work tree."""
        rc, out, _ = _run_git(self.repo_path, ["rev-parse", "--is-inside-work-tree"])
        if rc == 0 and out == "true":
            return
        rc, out, err = _run_git(self.repo_path, ["init"])
        if rc != 0:
            raise RuntimeError(f"git init failed: {err or out}")

    def head(self) -> Optional[str]:
        rc, out, _ = _run_git(self.repo_path, ["rev-parse", "HEAD"])
        return out if rc == 0 else None

    def commit(self, descriptor: CommitDescriptor, files: Sequence[str] = ()) -> Dict[str, Any]:
        self.ensure_repo()
        if files:
            rc, _, err = _run_git(self.repo_path, ["add", "--", *files])
            if rc != 0:
                raise RuntimeError(f"git add failed for {descriptor.unit_id}: {err}")

        # --only keeps anything else in the index out of the unit's commit;
        # without paths it records an empty commit.
        args = ["commit", "--allow-empty", "--only", "-m", descriptor.message]
        if files:
            args += ["--", *files]
        rc, out, err = _run_git(self.repo_path, args)
        if rc != 0:
            raise RuntimeError(f"git commit failed for {descriptor.unit_id}: {err or out}")

        sha = self.head()
        logger.info(f"Committed {descriptor.header} as {sha}")
        return {
            "unit_id": descriptor.unit_id,
            "header": descriptor.header,
            "message": descriptor.message,
            "files": list(files),
            "committed_at": utc_timestamp(),
            "committer": self.name,
            "sha": sha,
        }


def make_committer(name: str, root: Path | str) -> Committer:
    """Build the committer configured by ``ARCHRUN_COMMITTER``."""
    if name == JournalCommitter.name:
        return JournalCommitter()
    if name == GitCommitter.name:
        return GitCommitter(root)
    raise ValueError(f"Unknown committer '{name}'; expected 'journal' or 'git'.")
