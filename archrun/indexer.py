"""Locate the design, status and readme artifacts of a workspace.

Architecture notes and status ledgers are often kept out of version control,
so the scan walks the whole tree and ignores exclusion rules unless a caller
explicitly asks for them to be honored.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import MissingDesignDoc


DESIGN_CANDIDATES = ("architecture.md", "design.md", "system_design.md", "system-design.md")
STATUS_CANDIDATES = ("status.md", "progress.md")
README_CANDIDATES = ("readme.md", "readme.rst", "readme.txt", "readme")

# Never descended into, even when exclusion rules are overridden.
ALWAYS_SKIPPED_DIRS = frozenset({".git", ".hg", ".svn"})

logger = logging.getLogger("archrun.indexer")


@dataclass(frozen=True, slots=True)
class DocumentLocations:
    """Where the workspace keeps its planning artifacts."""

    root: Path
    design_doc: Optional[Path] = None
    status_ledger: Optional[Path] = None
    readme: Optional[Path] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary representation."""
        return {
            "root": str(self.root),
            "design_doc": str(self.design_doc) if self.design_doc else None,
            "status_ledger": str(self.status_ledger) if self.status_ledger else None,
            "readme": str(self.readme) if self.readme else None,
        }


def load_ignore_patterns(root: Path) -> List[str]:
    """Read the root .gitignore and .git/info/exclude patterns."""
    patterns: List[str] = []
    for source in (root / ".gitignore", root / ".git" / "info" / "exclude"):
        if not source.is_file():
            continue
        for line in source.read_text(encoding="utf-8", errors="replace").splitlines():
            cleaned = line.strip()
            # Negated patterns are not supported; they only ever re-include files.
            if not cleaned or cleaned.startswith("#") or cleaned.startswith("!"):
                continue
            patterns.append(cleaned)
    return patterns


def is_ignored(rel_path: str, patterns: Iterable[str], *, is_dir: bool = False) -> bool:
    """Match a root-relative posix path against gitignore-style patterns."""
    path = rel_path.replace("\\", "/").strip("/")
    name = path.rsplit("/", 1)[-1]
    for pattern in patterns:
        pat = pattern
        dir_only = pat.endswith("/")
        if dir_only:
            pat = pat.rstrip("/")
            if not is_dir:
                continue
        if "/" in pat:
            anchored = pat.lstrip("/")
            if fnmatch.fnmatch(path, anchored) or fnmatch.fnmatch(path, f"{anchored}/**"):
                return True
        elif fnmatch.fnmatch(name, pat):
            return True
    return False


class DocumentIndexer:
    """Find planning artifacts anywhere under a workspace root."""

    def __init__(
        self,
        design_candidates: Tuple[str, ...] = DESIGN_CANDIDATES,
        status_candidates: Tuple[str, ...] = STATUS_CANDIDATES,
        readme_candidates: Tuple[str, ...] = README_CANDIDATES,
    ):
        self.design_candidates = tuple(name.lower() for name in design_candidates)
        self.status_candidates = tuple(name.lower() for name in status_candidates)
        self.readme_candidates = tuple(name.lower() for name in readme_candidates)

    def locate(self, root: Path | str, *, include_ignored: bool = True) -> DocumentLocations:
        """Locate the readme, design artifact and status ledger.

        ``include_ignored`` defaults to True: files excluded by .gitignore are
        still found. Pass False to honor the exclusion rules.

        Raises:
            MissingDesignDoc: if no design artifact exists under ``root``.
        """
        resolved = Path(root).expanduser().resolve()
        if not resolved.is_dir():
            raise ValueError(f"Workspace root '{root}' is not a directory.")

        files = self._scan(resolved, include_ignored=include_ignored)
        locations = DocumentLocations(
            root=resolved,
            design_doc=self._pick(resolved, files, self.design_candidates),
            status_ledger=self._pick(resolved, files, self.status_candidates),
            readme=self._pick(resolved, files, self.readme_candidates),
        )

        if locations.design_doc is None:
            raise MissingDesignDoc(str(resolved))

        logger.info(f"Design artifact located at {locations.design_doc}")
        return locations

    def _scan(self, root: Path, *, include_ignored: bool) -> List[Path]:
        wanted = set(self.design_candidates + self.status_candidates + self.readme_candidates)
        patterns = [] if include_ignored else load_ignore_patterns(root)
        found: List[Path] = []

        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix()
            kept = []
            for dirname in sorted(dirnames):
                if dirname in ALWAYS_SKIPPED_DIRS:
                    continue
                rel = dirname if rel_dir == "." else f"{rel_dir}/{dirname}"
                if patterns and is_ignored(rel, patterns, is_dir=True):
                    logger.debug(f"Skipping ignored directory {rel}")
                    continue
                kept.append(dirname)
            dirnames[:] = kept

            for filename in filenames:
                if filename.lower() not in wanted:
                    continue
                rel = filename if rel_dir == "." else f"{rel_dir}/{filename}"
                if patterns and is_ignored(rel, patterns):
                    logger.debug(f"Skipping ignored file {rel}")
                    continue
                found.append(current / filename)

        return found

    @staticmethod
    def _pick(root: Path, files: List[Path], candidates: Tuple[str, ...]) -> Optional[Path]:
        matches = [path for path in files if path.name.lower() in candidates]
        if not matches:
            return None

        def rank(path: Path) -> Tuple[int, int, str]:
            rel = path.relative_to(root)
            return (len(rel.parts), candidates.index(path.name.lower()), rel.as_posix())

        return min(matches, key=rank)


def locate(root: Path | str, *, include_ignored: bool = True) -> DocumentLocations:
    """Module-level shortcut for ``DocumentIndexer().locate``."""
    return DocumentIndexer().locate(root, include_ignored=include_ignored)
