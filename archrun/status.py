"""Component lifecycle tracking in a persisted status ledger.

The ledger is plain markdown, one section per component::

    ## pdf-viewer
    State: in-progress
    Updated: 2026-01-01T10:00:00Z

Transitions only move forward: not-started -> in-progress -> done.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional

from .errors import InvalidTransition, LedgerError
from .models import (
    STATE_DONE,
    STATE_IN_PROGRESS,
    STATE_NOT_STARTED,
    STATES,
    StatusLedger,
    StatusRecord,
    utc_timestamp,
)
from .arch_logging import log_status_transition


logger = logging.getLogger("archrun.status")

LEGAL_TRANSITIONS = frozenset({
    (STATE_NOT_STARTED, STATE_IN_PROGRESS),
    (STATE_IN_PROGRESS, STATE_DONE),
})

LEDGER_TITLE = "# Component Status"

_SECTION_PATTERN = re.compile(r"^##\s+(?P<name>.+?)\s*$")
_FIELD_PATTERN = re.compile(r"^\s*(?:[-*]\s+)?(?:\*\*)?(?P<key>state|updated)(?:\*\*)?\s*:\s*(?P<value>.+?)\s*$", re.IGNORECASE)


class StatusTracker:
    """Apply lifecycle transitions to an explicit StatusLedger."""

    def advance(self, ledger: StatusLedger, component: str, from_state: str, to_state: str) -> StatusLedger:
        """Return a new ledger with ``component`` moved from ``from_state`` to ``to_state``.

        Re-applying a transition that already happened is a no-op.

        Raises:
            InvalidTransition: the transition is illegal or ``from_state`` is stale.
        """
        current = ledger.state_of(component)
        if (from_state, to_state) not in LEGAL_TRANSITIONS:
            raise InvalidTransition(component, current, from_state, to_state)
        if current == to_state:
            logger.debug(f"{component} already {to_state}; transition ignored")
            return ledger
        if current != from_state:
            raise InvalidTransition(component, current, from_state, to_state)

        record = StatusRecord(component=component, state=to_state, updated_at=utc_timestamp())
        log_status_transition(component, from_state, to_state)
        return ledger.with_record(record)

    def start(self, ledger: StatusLedger, component: str) -> StatusLedger:
        return self.advance(ledger, component, STATE_NOT_STARTED, STATE_IN_PROGRESS)

    def finish(self, ledger: StatusLedger, component: str) -> StatusLedger:
        return self.advance(ledger, component, STATE_IN_PROGRESS, STATE_DONE)


def parse_ledger(text: str) -> StatusLedger:
    """Parse ledger markdown; sections without a State line are kept as preamble."""
    preamble: List[str] = []
    records: List[StatusRecord] = []
    section_name: Optional[str] = None
    section_lines: List[str] = []

    def flush() -> None:
        if section_name is None:
            return
        state = None
        updated = None
        for line in section_lines:
            match = _FIELD_PATTERN.match(line)
            if not match:
                continue
            if match.group("key").lower() == "state":
                state = match.group("value").strip().lower()
            else:
                updated = match.group("value").strip()
        if state is None:
            preamble.append(f"## {section_name}")
            preamble.extend(section_lines)
            return
        if state not in STATES:
            raise LedgerError(f"Status ledger entry '{section_name}' has unknown state '{state}'")
        records.append(StatusRecord(component=section_name, state=state, updated_at=updated))

    for line in text.splitlines():
        match = _SECTION_PATTERN.match(line)
        if match:
            flush()
            section_name = match.group("name").strip()
            section_lines = []
            continue
        if section_name is None:
            if line.strip() != LEDGER_TITLE:
                preamble.append(line)
        else:
            section_lines.append(line)
    flush()

    return StatusLedger(records=tuple(records), preamble="\n".join(preamble).strip())


def render_ledger(ledger: StatusLedger) -> str:
    lines = [LEDGER_TITLE, ""]
    if ledger.preamble:
        lines.extend([ledger.preamble, ""])
    for record in ledger.records:
        lines.append(f"## {record.component}")
        lines.append(f"State: {record.state}")
        if record.updated_at:
            lines.append(f"Updated: {record.updated_at}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


class StatusLedgerStore:
    """Read and write the ledger file; writes replace the file atomically."""

    def __init__(self, path: Path | str, tracker: Optional[StatusTracker] = None):
        self.path = Path(path)
        self.tracker = tracker or StatusTracker()

    def load(self) -> StatusLedger:
        if not self.path.exists():
            return StatusLedger()
        return parse_ledger(self.path.read_text(encoding="utf-8"))

    def save(self, ledger: StatusLedger) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".status-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(render_ledger(ledger))
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return self.path

    def advance(self, component: str, from_state: str, to_state: str) -> StatusLedger:
        """Read-modify-write one transition; the file is untouched when it is rejected."""
        ledger = self.load()
        updated = self.tracker.advance(ledger, component, from_state, to_state)
        if updated is not ledger:
            self.save(updated)
        return updated

    def state_of(self, component: str) -> str:
        return self.load().state_of(component)
