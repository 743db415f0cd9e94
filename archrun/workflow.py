"""Workflow management for archrun.

This module is the boundary between the planning pipeline and its callers
(the MCP server and the CLI). Every operation returns a plain dictionary with a
``next_suggested_step`` and a ``workflow_tip``; failures are reported as error
payloads carrying the error kind instead of escaping as exceptions.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .committers import Committer
from .config import Settings
from .errors import ArchRunError
from .models import STATE_DONE, WORKFLOW_STEPS
from .workspace import Workspace
from .arch_logging import log_error_with_context, log_performance


logger = logging.getLogger("archrun.workflow")

# error kind -> (suggestion, next suggested step)
_RECOVERY = {
    "missing_design_doc": (
        "Add an ARCHITECTURE.md (or DESIGN.md) describing the components before planning",
        "locate_documents",
    ),
    "design_document_error": (
        "Fix the design artifact so every component and sub-element is declared once",
        "locate_documents",
    ),
    "ledger_error": (
        "Fix the status ledger so every component records one of not-started, in-progress or done",
        "locate_documents",
    ),
    "not_found": (
        "No component is close to that name; pick one from list_components",
        "list_components",
    ),
    "ambiguous_match": (
        "Several components match; call run again with confirm set to one of the candidates",
        "run",
    ),
    "confirmation_required": (
        "The name is only a suggestion; call run again with confirm set to the suggested component",
        "run",
    ),
    "sequencing_error": (
        "Units complete strictly in plan order; fetch the next unit and complete that one",
        "next_unit",
    ),
    "invalid_transition": (
        "The status ledger only moves forward; check the component status",
        "component_status",
    ),
}


class WorkflowManager:
    """Manages the guided archrun delivery workflow for one repository."""

    def __init__(
        self,
        root: Path | str,
        settings: Optional[Settings] = None,
        committer: Optional[Committer] = None,
    ):
        """Initialize workflow manager with workspace root."""
        self.workspace = Workspace(root, settings=settings, committer=committer)

    # ------------------------------------------------------------------
    # Documents and catalog
    # ------------------------------------------------------------------

    def locate_documents(self, include_ignored: bool = True) -> Dict[str, Any]:
        """Locate the planning artifacts of the workspace."""
        try:
            locations = self.workspace.locate_documents(include_ignored=include_ignored)
            return {
                **locations.to_dict(),
                "include_ignored": include_ignored,
                "next_suggested_step": "list_components",
                "workflow_tip": "Next: review the catalog with list_components, then call run with a component name",
                "message": f"Design artifact found at {locations.design_doc}",
            }
        except Exception as e:
            return self._error_payload(e, "locate_documents", include_ignored=include_ignored)

    def list_components(self) -> Dict[str, Any]:
        """List catalog components and their lifecycle state."""
        try:
            components = self.workspace.list_components()
            pending = [c["name"] for c in components if c["state"] != STATE_DONE]
            return {
                "components": components,
                "count": len(components),
                "next_suggested_step": "run" if pending else "component_status",
                "workflow_tip": (
                    f"Next: deliver a component with run, e.g. run('{pending[0]}')"
                    if pending else "Every component in the catalog is done"
                ),
                "message": f"Found {len(components)} components" if components else "The design artifact declares no components",
            }
        except Exception as e:
            return self._error_payload(e, "list_components")

    # ------------------------------------------------------------------
    # Resolution and planning
    # ------------------------------------------------------------------

    def resolve_component(self, component_name: str, confirm: Optional[str] = None) -> Dict[str, Any]:
        """Resolve a name without planning; non-exact matches need ``confirm``."""
        try:
            resolution = self.workspace.resolve(component_name, confirm=confirm)
            return {
                "resolution": resolution.to_dict(),
                "component": resolution.component.to_dict(),
                "next_suggested_step": "run",
                "workflow_tip": f"Next: run('{resolution.component.name}') to plan and sequence it",
                "message": (
                    f"'{component_name}' resolved to {resolution.component.name}"
                    + (" (confirmed)" if resolution.confirmed else "")
                ),
            }
        except Exception as e:
            return self._error_payload(e, "resolve_component", component_name=component_name, confirm=confirm)

    def preview_plan(self, component_name: str, confirm: Optional[str] = None) -> Dict[str, Any]:
        """Show the sequenced plan for a component without starting it."""
        try:
            resolution, plan = self.workspace.preview(component_name, confirm=confirm)
            return {
                "resolution": resolution.to_dict(),
                "plan": plan.to_dict(),
                "commits": [commit.header for commit in plan.commits],
                "next_suggested_step": "run",
                "workflow_tip": "Next: call run to persist this plan and mark the component in progress",
                "message": f"{len(plan.steps)} units planned for {plan.component}",
            }
        except Exception as e:
            return self._error_payload(e, "preview_plan", component_name=component_name, confirm=confirm)

    @log_performance("run")
    def run(self, component_name: str, confirm: Optional[str] = None) -> Dict[str, Any]:
        """Resolve, plan and sequence a component and mark it in progress."""
        try:
            resolution, plan = self.workspace.start_delivery(component_name, confirm=confirm)
            state = self.workspace.ledger.state_of(plan.component)
            first = plan.steps[0] if plan.steps else None
            return {
                "resolution": resolution.to_dict(),
                "component": plan.component,
                "state": state,
                "plan": plan.to_dict(),
                "commits": [commit.header for commit in plan.commits],
                "next_unit": first.unit.to_dict() if first else None,
                "next_suggested_step": "next_unit" if first else "component_status",
                "workflow_tip": (
                    f"Next: implement {first.unit.unit_id}, then call complete_unit"
                    if first else "Nothing left to deliver for this component"
                ),
                "message": f"Sequenced {len(plan.steps)} units for {plan.component}",
            }
        except Exception as e:
            return self._error_payload(e, "run", component_name=component_name, confirm=confirm)

    # ------------------------------------------------------------------
    # Unit delivery
    # ------------------------------------------------------------------

    def next_unit(self, component: str) -> Dict[str, Any]:
        """Return the next pending unit and the commit it will produce."""
        try:
            step = self.workspace.next_unit(component)
            remaining = self.workspace.remaining_steps(component)
            if step is None:
                return {
                    "component": component,
                    "unit": None,
                    "remaining": 0,
                    "next_suggested_step": "component_status",
                    "workflow_tip": "All units are delivered",
                    "message": f"No remaining units for {component}",
                }
            return {
                "component": step.unit.component,
                "unit": step.unit.to_dict(),
                "commit": step.commit.to_dict(),
                "commit_message": step.commit.message,
                "remaining": len(remaining),
                "next_suggested_step": "complete_unit",
                "workflow_tip": (
                    "Implement this unit, then call complete_unit with the files and public elements it produced"
                    if step.unit.kind == "code"
                    else "Documentation is synthesized from the committed code; call complete_unit"
                ),
                "message": f"Next: {step.commit.header}",
            }
        except Exception as e:
            return self._error_payload(e, "next_unit", component=component)

    def complete_unit(
        self,
        component: str,
        unit_id: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Commit the next pending unit; ``unit_id`` must match it when given."""
        try:
            outcome = self.workspace.complete_unit(component, unit_id, result)
            done = outcome["state"] == STATE_DONE
            return {
                **outcome,
                "next_suggested_step": "component_status" if done else "next_unit",
                "workflow_tip": (
                    f"{outcome['component']} is done" if done
                    else f"{outcome['remaining']} units left; continue with next_unit"
                ),
                "message": f"Committed {outcome['commit']['header']}",
            }
        except Exception as e:
            return self._error_payload(e, "complete_unit", component=component, unit_id=unit_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def component_status(self, component: str) -> Dict[str, Any]:
        """Lifecycle state and delivery progress of a component."""
        try:
            status = self.workspace.component_status(component)
            pending = status["next_unit"] is not None
            return {
                **status,
                "next_suggested_step": "next_unit" if pending else ("list_components" if status["state"] == STATE_DONE else "run"),
                "workflow_tip": (
                    "Continue with next_unit" if pending
                    else "Pick another component from list_components" if status["state"] == STATE_DONE
                    else "Start the component with run"
                ),
            }
        except Exception as e:
            return self._error_payload(e, "component_status", component=component)

    @staticmethod
    def get_workflow_guide() -> Dict[str, Any]:
        """Recommended order of the archrun tools."""
        return {
            "workflow_overview": "Turn an architecture document into ordered commits and matching documentation",
            "steps": [step.to_dict() for step in WORKFLOW_STEPS],
            "tips": [
                "Non-exact names are only suggestions; confirm them by calling run with confirm",
                "Complete units strictly in the order next_unit returns them",
                "Documentation units always follow every code unit of the component",
                "Stopping after any unit is safe; calling run again resumes with the remaining units",
                "The status ledger only moves forward: not-started, in-progress, done",
            ],
        }

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _error_payload(self, error: Exception, operation: str, **context) -> Dict[str, Any]:
        logger.error(f"{operation} failed: {error}")
        log_error_with_context(error, {"operation": operation, **context})

        if isinstance(error, ArchRunError):
            payload = error.to_dict()
            suggestion, next_step = _RECOVERY.get(error.kind, ("Check the error details", operation))
        else:
            payload = {"error_kind": "unexpected_error", "error": str(error)}
            suggestion, next_step = ("Check the workspace root and its permissions", "locate_documents")

        return {
            **payload,
            "suggestion": suggestion,
            "next_suggested_step": next_step,
            "workflow_tip": suggestion,
            "message": f"Error: {error}",
        }
