"""In-process delivery of a whole component.

``DeliveryRunner`` drives a workspace through one implementation pass: start
the delivery, then emit and commit each pending unit in plan order. Code is
produced by a ``CodeEmitter``; documentation is synthesized by the workspace
once the code it describes has been committed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from .committers import Committer
from .models import KIND_CODE, CodeUnitResult, DeliveryStep, PublicElement, WorkUnit
from .resolver import Confirmer
from .workspace import Workspace
from .arch_logging import observability_hooks


logger = logging.getLogger("archrun.delivery")

# Called before every unit; returning False stops the run after the last completed unit.
ContinueCallback = Callable[[DeliveryStep], bool]


class CodeEmitter(Protocol):
    def emit(self, unit: WorkUnit) -> CodeUnitResult:
        ...


class DeclaredSurfaceEmitter:
    """Emitter that writes no files and reports the surface the design declares.

    Used when code is produced outside archrun (by hand or by an assistant)
    and only the sequencing, commits and documentation are driven here.
    """

    def emit(self, unit: WorkUnit) -> CodeUnitResult:
        return CodeUnitResult(
            unit_id=unit.unit_id,
            component=unit.component,
            element=unit.element,
            public_elements=[PublicElement.from_dict(item) for item in unit.payload.get("exposes", [])],
        )


class DeliveryRunner:
    """Run every pending unit of a component, one at a time."""

    def __init__(
        self,
        workspace: Workspace,
        emitter: Optional[CodeEmitter] = None,
        committer: Optional[Committer] = None,
    ):
        self.workspace = workspace
        self.emitter = emitter or DeclaredSurfaceEmitter()
        if committer is not None:
            self.workspace.committer = committer

    def deliver(
        self,
        component_name: str,
        confirmer: Optional[Confirmer] = None,
        should_continue: Optional[ContinueCallback] = None,
    ) -> Dict[str, Any]:
        """Deliver ``component_name`` and report what was committed.

        Errors propagate after the units completed so far have been committed;
        nothing is rolled back. A later call resumes with the remaining units.
        """
        resolution, plan = self.workspace.start_delivery(component_name, confirmer=confirmer)
        name = plan.component

        delivered: List[Dict[str, Any]] = []
        cancelled = False
        for step in plan.steps:
            if should_continue is not None and not should_continue(step):
                cancelled = True
                logger.info(f"Delivery of {name} stopped before {step.unit.unit_id}")
                break

            result = self.emitter.emit(step.unit) if step.unit.kind == KIND_CODE else None
            outcome = self.workspace.complete_unit(name, step.unit.unit_id, result)
            delivered.append({
                "unit_id": step.unit.unit_id,
                "kind": step.unit.kind,
                "commit": outcome["commit"]["header"],
            })

        remaining = self.workspace.remaining_steps(name)
        state = self.workspace.ledger.state_of(name)
        observability_hooks.log_workflow_event(
            "delivery_finished" if not cancelled else "delivery_cancelled",
            component=name,
            delivered=len(delivered),
            remaining=len(remaining),
        )
        return {
            "component": name,
            "resolution": resolution.to_dict(),
            "delivered": delivered,
            "remaining": [step.unit.unit_id for step in remaining],
            "cancelled": cancelled,
            "state": state,
        }
