"""Workspace management for archrun.

This module ties the planning pipeline to a repository on disk: it locates the
design artifact, keeps the per-component delivery plan and journal under the
hidden storage directory, writes documentation blocks and advances the status
ledger as units are completed.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .committers import Committer, make_committer
from .config import Settings
from .design import DesignParser
from .docs import DocSynthesizer
from .errors import SequencingError
from .indexer import DocumentIndexer, DocumentLocations
from .models import (
    KIND_CODE,
    KIND_DOC,
    STATE_DONE,
    STATE_IN_PROGRESS,
    STATE_NOT_STARTED,
    CodeUnitResult,
    DeliveryPlan,
    DeliveryStep,
    DesignDocument,
    PublicElement,
    Resolution,
    WorkUnit,
    utc_timestamp,
)
from .planner import TaskPlanner, slugify
from .resolver import ComponentResolver, Confirmer
from .sequencer import DeliverySequencer
from .status import StatusLedgerStore, StatusTracker
from .arch_logging import (
    log_docs_synthesized,
    log_error_with_context,
    log_operation,
    log_performance,
    log_unit_completed,
    observability_hooks,
)


logger = logging.getLogger("archrun.workspace")

DEFAULT_LEDGER_NAME = "STATUS.md"


class Workspace:
    """Manage archrun delivery state within a repository."""

    def __init__(
        self,
        root: Path | str,
        settings: Optional[Settings] = None,
        committer: Optional[Committer] = None,
    ):
        """Initialize workspace with given root directory."""
        try:
            self.root = Path(root).expanduser().resolve()
            if not self.root.is_dir():
                raise ValueError(f"Workspace root '{root}' is not a directory.")

            self.settings = settings or Settings.from_env()
            self.base_dir = self.root / self.settings.storage_dir
            self.plans_dir = self.base_dir / "plans"
            self.docs_dir = self.root / self.settings.docs_dir

            try:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                self.plans_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create workspace directories: {e}")
                raise RuntimeError(f"Could not initialize workspace at {self.root}: {e}")

            self.indexer = DocumentIndexer()
            self.parser = DesignParser()
            self.resolver = ComponentResolver(self.settings.match_threshold)
            self.planner = TaskPlanner()
            self.sequencer = DeliverySequencer(self.settings.conventions)
            self.tracker = StatusTracker()
            self.committer = committer or make_committer(self.settings.committer, self.root)

            self._locations: Optional[DocumentLocations] = None
            self._design: Optional[DesignDocument] = None

            logger.debug(f"Workspace initialized at {self.root}")
        except Exception as e:
            logger.error(f"Failed to initialize workspace: {e}")
            log_error_with_context(e, {"operation": "workspace_init", "root": str(root)})
            raise

    # ------------------------------------------------------------------
    # Documents and catalog
    # ------------------------------------------------------------------

    def locate_documents(self, *, include_ignored: bool = True) -> DocumentLocations:
        """Locate the design artifact, status ledger and readme."""
        self._locations = self.indexer.locate(self.root, include_ignored=include_ignored)
        return self._locations

    def load_design(self) -> DesignDocument:
        """Return the design catalog, re-reading it when the file changed on disk."""
        if self._design is None or self._design.is_stale():
            locations = self.locate_documents()
            self._design = self.parser.parse_file(locations.design_doc)
            logger.info(f"Loaded {len(self._design.components)} components from {locations.design_doc}")
        return self._design

    @property
    def ledger_path(self) -> Path:
        """The workspace's own status ledger, or the default one under the storage dir."""
        locations = self._locations or self.locate_documents()
        if locations.status_ledger is not None:
            return locations.status_ledger
        return self.base_dir / DEFAULT_LEDGER_NAME

    @property
    def ledger(self) -> StatusLedgerStore:
        return StatusLedgerStore(self.ledger_path, self.tracker)

    def list_components(self) -> List[Dict[str, Any]]:
        """List catalog components together with their lifecycle state."""
        design = self.load_design()
        ledger = self.ledger.load()
        return [
            {
                "name": component.name,
                "aliases": list(component.aliases),
                "platform": component.platform,
                "dependencies": list(component.dependencies),
                "sub_elements": [element.name for element in component.sub_elements],
                "state": ledger.state_of(component.name),
            }
            for component in design.components
        ]

    # ------------------------------------------------------------------
    # Resolution and planning
    # ------------------------------------------------------------------

    def resolve(
        self,
        component_name: str,
        *,
        confirm: Optional[str] = None,
        confirmer: Optional[Confirmer] = None,
    ) -> Resolution:
        """Resolve a requested name; ``confirm`` is an explicit pick made earlier."""
        design = self.load_design()
        if confirm:
            return self.resolver.confirm_choice(component_name, design, confirm)
        return self.resolver.resolve_with(component_name, design, confirmer)

    def preview(
        self,
        component_name: str,
        *,
        confirm: Optional[str] = None,
    ) -> Tuple[Resolution, DeliveryPlan]:
        """Plan and sequence the remaining units without persisting anything."""
        resolution = self.resolve(component_name, confirm=confirm)
        spec = resolution.component
        units = self.planner.plan(
            spec,
            include_tests=self.settings.include_tests,
            completed=self.load_journal(spec.name)["completed"],
        )
        return resolution, self.sequencer.sequence(units, component=spec.name)

    @log_performance("start_delivery")
    def start_delivery(
        self,
        component_name: str,
        *,
        confirm: Optional[str] = None,
        confirmer: Optional[Confirmer] = None,
    ) -> Tuple[Resolution, DeliveryPlan]:
        """Resolve, plan and sequence a component, then mark it in progress.

        A resumed run re-plans only units missing from the journal. Nothing is
        written when resolution, planning or sequencing fails.
        """
        try:
            with log_operation("start_delivery", component=component_name):
                resolution = self.resolve(component_name, confirm=confirm, confirmer=confirmer)
                spec = resolution.component
                journal = self.load_journal(spec.name)

                units = self.planner.plan(
                    spec,
                    include_tests=self.settings.include_tests,
                    completed=journal["completed"],
                )
                plan = self.sequencer.sequence(units, component=spec.name)

                store = self.ledger
                store.advance(spec.name, STATE_NOT_STARTED, STATE_IN_PROGRESS)

                self._save_plan(plan)
                self._save_journal(spec.name, journal)

                if not plan.steps:
                    # Every unit was delivered by an earlier run that stopped before finishing.
                    store.advance(spec.name, STATE_IN_PROGRESS, STATE_DONE)

                observability_hooks.log_workflow_event(
                    "delivery_started",
                    component=spec.name,
                    steps=len(plan.steps),
                    resumed=bool(journal["completed"]),
                )
                return resolution, plan

        except Exception as e:
            log_error_with_context(e, {"operation": "start_delivery", "component": component_name})
            raise

    # ------------------------------------------------------------------
    # Plan and journal persistence
    # ------------------------------------------------------------------

    def _component_dir(self, component: str) -> Path:
        return self.plans_dir / slugify(component)

    def _plan_path(self, component: str) -> Path:
        return self._component_dir(component) / "plan.json"

    def _journal_path(self, component: str) -> Path:
        return self._component_dir(component) / "journal.json"

    def _save_plan(self, plan: DeliveryPlan) -> Path:
        path = self._plan_path(plan.component)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(plan.to_dict(), indent=2), encoding="utf-8")
        return path

    def load_plan(self, component: str) -> Optional[DeliveryPlan]:
        """Load the last sequenced plan for a component, if any."""
        path = self._plan_path(component)
        if not path.exists():
            return None
        return DeliveryPlan.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def load_journal(self, component: str) -> Dict[str, Any]:
        """Completed unit ids, code results and commit records of a component."""
        path = self._journal_path(component)
        if not path.exists():
            return {"component": component, "completed": [], "results": {}, "commits": []}
        data = json.loads(path.read_text(encoding="utf-8"))
        data.setdefault("completed", [])
        data.setdefault("results", {})
        data.setdefault("commits", [])
        return data

    def _save_journal(self, component: str, journal: Dict[str, Any]) -> Path:
        journal["component"] = component
        journal["updated_at"] = utc_timestamp()
        path = self._journal_path(component)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(journal, indent=2), encoding="utf-8")
        return path

    def _require_plan(self, component: str) -> DeliveryPlan:
        plan = self.load_plan(component)
        if plan is None:
            raise SequencingError(f"Component '{component}' has no delivery plan. Call run first.")
        return plan

    # ------------------------------------------------------------------
    # Unit delivery
    # ------------------------------------------------------------------

    def next_unit(self, component: str) -> Optional[DeliveryStep]:
        """The first planned step not yet recorded in the journal."""
        plan = self._require_plan(component)
        completed = set(self.load_journal(plan.component)["completed"])
        for step in plan.steps:
            if step.unit.unit_id not in completed:
                return step
        return None

    def remaining_steps(self, component: str) -> List[DeliveryStep]:
        plan = self._require_plan(component)
        completed = set(self.load_journal(plan.component)["completed"])
        return [step for step in plan.steps if step.unit.unit_id not in completed]

    @log_performance("complete_unit")
    def complete_unit(
        self,
        component: str,
        unit_id: Optional[str] = None,
        result: Optional[Union[CodeUnitResult, Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Commit the next pending unit of a component.

        Units complete strictly in plan order. Code units record what the
        emitter produced; doc units synthesize blocks from the recorded code
        results and write them to the documentation area. Completing the last
        unit marks the component done.
        """
        try:
            plan = self._require_plan(component)
            name = plan.component
            journal = self.load_journal(name)
            completed = list(journal["completed"])

            pending = next((step for step in plan.steps if step.unit.unit_id not in completed), None)
            if pending is None:
                raise SequencingError(f"Component '{name}' has no remaining units.", unit_id=unit_id)
            if unit_id and unit_id != pending.unit.unit_id:
                if unit_id in completed:
                    raise SequencingError(f"Unit '{unit_id}' is already completed.", unit_id=unit_id)
                raise SequencingError(
                    f"Unit '{unit_id}' is out of order; the next unit is '{pending.unit.unit_id}'.",
                    unit_id=unit_id,
                )

            unit = pending.unit
            with log_operation("complete_unit", component=name, unit_id=unit.unit_id, kind=unit.kind):
                outcome: Dict[str, Any] = {}
                if unit.kind == KIND_CODE:
                    code_result = self._code_result(unit, result)
                    files = list(code_result.files)
                    journal["results"][unit.unit_id] = code_result.to_dict()
                elif unit.kind == KIND_DOC:
                    doc_path, blocks = self._write_docs(unit, journal, completed)
                    files = [doc_path.relative_to(self.root).as_posix()]
                    outcome = {"doc_path": str(doc_path), "doc_blocks": [block.to_dict() for block in blocks]}
                else:
                    raise SequencingError(f"Unit '{unit.unit_id}' has unknown kind '{unit.kind}'", unit_id=unit.unit_id)

                commit_record = self.committer.commit(pending.commit, files)
                completed.append(unit.unit_id)
                journal["completed"] = completed
                journal["commits"].append(commit_record)
                self._save_journal(name, journal)
                log_unit_completed(name, unit.unit_id, unit.kind, step=pending.index)

                remaining = [step for step in plan.steps if step.unit.unit_id not in completed]
                state = STATE_IN_PROGRESS
                if not remaining:
                    self.ledger.advance(name, STATE_IN_PROGRESS, STATE_DONE)
                    state = STATE_DONE

            return {
                "component": name,
                "unit": unit.to_dict(),
                "commit": commit_record,
                "remaining": len(remaining),
                "next_unit": remaining[0].unit.to_dict() if remaining else None,
                "state": state,
                **outcome,
            }

        except Exception as e:
            log_error_with_context(e, {"operation": "complete_unit", "component": component, "unit_id": unit_id})
            raise

    def _code_result(
        self,
        unit: WorkUnit,
        result: Optional[Union[CodeUnitResult, Dict[str, Any]]],
    ) -> CodeUnitResult:
        declared = [PublicElement.from_dict(item) for item in unit.payload.get("exposes", [])]
        if result is None:
            return CodeUnitResult(
                unit_id=unit.unit_id,
                component=unit.component,
                element=unit.element,
                public_elements=declared,
            )

        if isinstance(result, dict):
            data = {"unit_id": unit.unit_id, "component": unit.component, "element": unit.element, **result}
            code_result = CodeUnitResult.from_dict(data)
            if "public_elements" not in result:
                code_result.public_elements = declared
        else:
            code_result = result

        if code_result.unit_id != unit.unit_id:
            raise SequencingError(
                f"Result for '{code_result.unit_id}' was submitted while completing '{unit.unit_id}'",
                unit_id=unit.unit_id,
            )
        return code_result

    def _write_docs(self, unit: WorkUnit, journal: Dict[str, Any], completed: List[str]):
        synthesizer = DocSynthesizer(emitted=completed, platform=unit.payload.get("platform"))
        blocks = []
        for covered in unit.payload.get("covers", []):
            recorded = journal["results"].get(covered)
            if recorded is None:
                raise SequencingError(
                    f"Doc unit '{unit.unit_id}' covers '{covered}', which has not been emitted",
                    unit_id=unit.unit_id,
                )
            blocks.extend(synthesizer.synthesize(CodeUnitResult.from_dict(recorded)))

        path = self.docs_dir / unit.payload.get("path", f"{slugify(unit.component)}/{unit.tier_label}.md")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(synthesizer.render(f"{unit.component}: {unit.tier_label}", blocks), encoding="utf-8")

        log_docs_synthesized(unit.component, unit.unit_id, len(blocks), path=str(path))
        return path, blocks

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def component_status(self, component: str) -> Dict[str, Any]:
        """Lifecycle state plus delivery progress of one component."""
        design = self.load_design()
        spec = design.get(component)
        name = spec.name if spec else component
        state = self.ledger.state_of(name)

        plan = self.load_plan(name)
        journal = self.load_journal(name)
        completed = set(journal["completed"])
        remaining = [step for step in plan.steps if step.unit.unit_id not in completed] if plan else []

        return {
            "component": name,
            "in_catalog": spec is not None,
            "state": state,
            "ledger_path": str(self.ledger_path),
            "plan_path": str(self._plan_path(name)) if plan else None,
            "units": {
                "planned": len(plan.steps) if plan else 0,
                "completed": len(completed),
                "remaining": len(remaining),
            },
            "next_unit": remaining[0].unit.to_dict() if remaining else None,
            "commits": list(journal["commits"]),
        }
