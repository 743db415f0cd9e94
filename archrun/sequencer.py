"""Linearize work units into atomic, ordered delivery steps."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set

from .config import CommitConventions
from .errors import SequencingError
from .models import (
    KIND_CODE,
    KIND_DOC,
    KIND_RANK,
    CommitDescriptor,
    DeliveryPlan,
    DeliveryStep,
    WorkUnit,
)
from .arch_logging import log_plan_sequenced


logger = logging.getLogger("archrun.sequencer")


class DeliverySequencer:
    """Validate a unit list and pair every unit with exactly one commit.

    The input order is kept as given. Rejected orderings raise
    ``SequencingError`` and produce no plan at all.
    """

    def __init__(self, conventions: Optional[CommitConventions] = None):
        self.conventions = conventions or CommitConventions()

    def sequence(self, work_units: Sequence[WorkUnit], *, component: Optional[str] = None) -> DeliveryPlan:
        units = list(work_units)
        if component is None:
            component = units[0].component if units else ""

        last_code: Dict[str, int] = {}
        index_of: Dict[str, int] = {}
        for idx, unit in enumerate(units):
            if unit.kind not in KIND_RANK:
                raise SequencingError(
                    f"Unit '{unit.unit_id}' has unknown kind '{unit.kind}'", unit_id=unit.unit_id
                )
            if unit.unit_id in index_of:
                raise SequencingError(
                    f"Unit '{unit.unit_id}' appears more than once; units cannot be merged or split",
                    unit_id=unit.unit_id,
                )
            index_of[unit.unit_id] = idx
            if unit.kind == KIND_CODE:
                last_code[unit.component] = idx

        steps: List[DeliveryStep] = []
        sequenced: Set[str] = set()
        for idx, unit in enumerate(units):
            if unit.kind == KIND_DOC and last_code.get(unit.component, -1) > idx:
                pending = units[last_code[unit.component]].unit_id
                raise SequencingError(
                    f"Doc unit '{unit.unit_id}' would precede code unit '{pending}' of "
                    f"component '{unit.component}'",
                    unit_id=unit.unit_id,
                )
            for dep in unit.depends_on:
                if dep in index_of and dep not in sequenced:
                    raise SequencingError(
                        f"Unit '{unit.unit_id}' depends on '{dep}', which is sequenced after it",
                        unit_id=unit.unit_id,
                    )
            steps.append(DeliveryStep(index=idx, unit=unit, commit=self.describe(unit)))
            sequenced.add(unit.unit_id)

        plan = DeliveryPlan(component=component, steps=steps)
        log_plan_sequenced(component, len(steps))
        return plan

    def describe(self, unit: WorkUnit) -> CommitDescriptor:
        """Derive the single commit descriptor for ``unit``."""
        payload = unit.payload
        summary = payload.get("summary") or (
            f"add {unit.element}" if unit.kind == KIND_CODE else f"document {unit.component}"
        )

        body_lines: List[str] = []
        if payload.get("description"):
            body_lines.append(str(payload["description"]))
        body_lines.append(f"Tier: {unit.tier} ({unit.tier_label})")
        if payload.get("platform"):
            body_lines.append(f"Platform: {payload['platform']}")
        exposes = payload.get("exposes") or []
        if exposes:
            body_lines.append("Exposes: " + ", ".join(item["name"] for item in exposes))
        covers = payload.get("covers") or []
        if unit.kind == KIND_DOC and covers:
            body_lines.append("Documents: " + ", ".join(covers))
        body_lines.append(f"Unit: {unit.unit_id}")

        return CommitDescriptor(
            type=self.conventions.commit_type(unit.kind, unit.tier),
            scope=unit.component,
            summary=self.conventions.clip_summary(summary),
            body="\n".join(body_lines),
            unit_id=unit.unit_id,
        )


def sequence(work_units: Sequence[WorkUnit], conventions: Optional[CommitConventions] = None) -> DeliveryPlan:
    """Module-level shortcut for ``DeliverySequencer(conventions).sequence``."""
    return DeliverySequencer(conventions).sequence(work_units)
