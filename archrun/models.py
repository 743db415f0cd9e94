"""Data models for archrun delivery planning.

This module contains the core data structures used throughout archrun,
representing the design catalog, planned work units, delivery plans,
commit descriptors, documentation blocks and component status.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


# Fixed delivery tiers, foundation first.
TIER_MODELS = 1
TIER_STRUCTURE = 2
TIER_MODULES = 3
TIER_LOGIC = 4
TIER_INTEGRATION = 5
TIER_TESTS = 6

TIER_LABELS: Dict[int, str] = {
    TIER_MODELS: "models",
    TIER_STRUCTURE: "structure",
    TIER_MODULES: "modules",
    TIER_LOGIC: "logic",
    TIER_INTEGRATION: "integration",
    TIER_TESTS: "tests",
}

KIND_CODE = "code"
KIND_DOC = "doc"
KIND_RANK: Dict[str, int] = {KIND_CODE: 0, KIND_DOC: 1}

STATE_NOT_STARTED = "not-started"
STATE_IN_PROGRESS = "in-progress"
STATE_DONE = "done"
STATES = (STATE_NOT_STARTED, STATE_IN_PROGRESS, STATE_DONE)


def utc_timestamp() -> str:
    return datetime.utcnow().isoformat(timespec="seconds") + "Z"


def slugify(value: str) -> str:
    """Lowercase, hyphen-separated form used in unit ids and on-disk paths."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "unit"


@dataclass(frozen=True, slots=True)
class PublicElement:
    """A publicly exposed element introduced by a sub-element."""

    name: str
    signature: Optional[str] = None
    parameters: Tuple[str, ...] = ()
    returns: Optional[str] = None
    raises: Tuple[str, ...] = ()
    stateful: bool = False
    description: str = ""

    @property
    def is_callable(self) -> bool:
        return self.signature is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "signature": self.signature,
            "parameters": list(self.parameters),
            "returns": self.returns,
            "raises": list(self.raises),
            "stateful": self.stateful,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicElement":
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            signature=data.get("signature"),
            parameters=tuple(data.get("parameters", [])),
            returns=data.get("returns"),
            raises=tuple(data.get("raises", [])),
            stateful=bool(data.get("stateful", False)),
            description=data.get("description", ""),
        )


@dataclass(frozen=True, slots=True)
class SubElement:
    """One described sub-element of a component (model, view, handler, ...)."""

    name: str
    tier: int
    kind: str = ""
    depends_on: Tuple[str, ...] = ()
    exposes: Tuple[PublicElement, ...] = ()
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "tier": self.tier,
            "kind": self.kind,
            "depends_on": list(self.depends_on),
            "exposes": [element.to_dict() for element in self.exposes],
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class ComponentSpec:
    """A named component of the design catalog."""

    name: str
    aliases: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()
    platform: Optional[str] = None
    sub_elements: Tuple[SubElement, ...] = ()
    description: str = ""

    @property
    def key(self) -> str:
        return self.name.lower()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "aliases": list(self.aliases),
            "dependencies": list(self.dependencies),
            "platform": self.platform,
            "sub_elements": [element.to_dict() for element in self.sub_elements],
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class DesignDocument:
    """Parsed design catalog; immutable once loaded."""

    components: Tuple[ComponentSpec, ...]
    source_path: Optional[Path] = None
    mtime: Optional[float] = None

    @property
    def names(self) -> List[str]:
        return [component.name for component in self.components]

    def get(self, name: str) -> Optional[ComponentSpec]:
        """Return the component with this name (case-insensitive), if any."""
        wanted = name.strip().lower()
        for component in self.components:
            if component.key == wanted:
                return component
        return None

    def is_stale(self) -> bool:
        """Check whether the source file changed since this catalog was parsed."""
        if self.source_path is None or self.mtime is None:
            return False
        if not self.source_path.exists():
            return True
        return self.source_path.stat().st_mtime != self.mtime


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """A catalog entry scored against a requested component name."""

    name: str
    score: float
    ratio: float
    matched_on: str
    position: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "score": round(self.score, 3),
            "matched_on": self.matched_on,
        }


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving a requested name to one component."""

    requested: str
    component: ComponentSpec
    exact: bool
    candidates: List[MatchCandidate] = field(default_factory=list)
    confirmed: bool = False

    @property
    def requires_confirmation(self) -> bool:
        """Non-exact matches are suggestions until an external actor confirms them."""
        return not self.exact and not self.confirmed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "requested": self.requested,
            "component": self.component.name,
            "exact": self.exact,
            "confirmed": self.confirmed,
            "requires_confirmation": self.requires_confirmation,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
        }


@dataclass(slots=True)
class WorkUnit:
    """One atomic, orderable piece of delivery work for a component."""

    unit_id: str
    component: str
    kind: str
    tier: int
    position: int
    element: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return (KIND_RANK.get(self.kind, len(KIND_RANK)), self.tier, self.position)

    @property
    def tier_label(self) -> str:
        return TIER_LABELS.get(self.tier, f"tier-{self.tier}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "unit_id": self.unit_id,
            "component": self.component,
            "kind": self.kind,
            "tier": self.tier,
            "tier_label": self.tier_label,
            "position": self.position,
            "element": self.element,
            "depends_on": list(self.depends_on),
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkUnit":
        """Create from dictionary representation."""
        return cls(
            unit_id=data["unit_id"],
            component=data["component"],
            kind=data["kind"],
            tier=int(data["tier"]),
            position=int(data.get("position", 0)),
            element=data.get("element"),
            depends_on=list(data.get("depends_on", [])),
            payload=dict(data.get("payload", {})),
        )


@dataclass(frozen=True, slots=True)
class CommitDescriptor:
    """A single logical change, derived 1:1 from a work unit."""

    type: str
    scope: str
    summary: str
    body: str
    unit_id: str

    @property
    def header(self) -> str:
        return f"{self.type}({self.scope}): {self.summary}"

    @property
    def message(self) -> str:
        if not self.body:
            return self.header
        return f"{self.header}\n\n{self.body}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type,
            "scope": self.scope,
            "summary": self.summary,
            "body": self.body,
            "unit_id": self.unit_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitDescriptor":
        """Create from dictionary representation."""
        return cls(
            type=data["type"],
            scope=data["scope"],
            summary=data["summary"],
            body=data.get("body", ""),
            unit_id=data["unit_id"],
        )


@dataclass(slots=True)
class DeliveryStep:
    """A sequenced work unit paired with the commit it will produce."""

    index: int
    unit: WorkUnit
    commit: CommitDescriptor

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "unit": self.unit.to_dict(),
            "commit": self.commit.to_dict(),
        }


@dataclass(slots=True)
class DeliveryPlan:
    """Fully ordered delivery steps for one implementation pass."""

    component: str
    steps: List[DeliveryStep] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)

    @property
    def units(self) -> List[WorkUnit]:
        return [step.unit for step in self.steps]

    @property
    def commits(self) -> List[CommitDescriptor]:
        return [step.commit for step in self.steps]

    def step_for(self, unit_id: str) -> Optional[DeliveryStep]:
        for step in self.steps:
            if step.unit.unit_id == unit_id:
                return step
        return None

    def verify(self) -> List[str]:
        """Re-check the code-before-docs invariant and return any issues."""
        issues = []
        last_code: Dict[str, int] = {}
        first_doc: Dict[str, int] = {}
        for step in self.steps:
            unit = step.unit
            if unit.kind == KIND_CODE:
                last_code[unit.component] = step.index
            elif unit.kind == KIND_DOC:
                first_doc.setdefault(unit.component, step.index)
        for component, doc_index in first_doc.items():
            code_index = last_code.get(component)
            if code_index is not None and code_index > doc_index:
                issues.append(
                    f"Component '{component}' has a doc unit at step {doc_index} "
                    f"before its code unit at step {code_index}"
                )
        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "component": self.component,
            "created_at": self.created_at,
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryPlan":
        """Create from dictionary representation."""
        steps = [
            DeliveryStep(
                index=int(item["index"]),
                unit=WorkUnit.from_dict(item["unit"]),
                commit=CommitDescriptor.from_dict(item["commit"]),
            )
            for item in data.get("steps", [])
        ]
        return cls(
            component=data["component"],
            steps=steps,
            created_at=data.get("created_at", utc_timestamp()),
        )


@dataclass(slots=True)
class CodeUnitResult:
    """What a code emitter produced for one code unit."""

    unit_id: str
    component: str
    element: Optional[str] = None
    files: List[str] = field(default_factory=list)
    public_elements: List[PublicElement] = field(default_factory=list)
    integration_points: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "unit_id": self.unit_id,
            "component": self.component,
            "element": self.element,
            "files": list(self.files),
            "public_elements": [element.to_dict() for element in self.public_elements],
            "integration_points": list(self.integration_points),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeUnitResult":
        """Create from dictionary representation."""
        return cls(
            unit_id=data["unit_id"],
            component=data["component"],
            element=data.get("element"),
            files=list(data.get("files", [])),
            public_elements=[PublicElement.from_dict(item) for item in data.get("public_elements", [])],
            integration_points=list(data.get("integration_points", [])),
        )


@dataclass(slots=True)
class DocBlock:
    """Structured documentation for one public element."""

    element: str
    summary: str
    integration_points: List[str]
    usage_example: str
    parameters: Optional[List[str]] = None
    returns: Optional[str] = None
    raises: Optional[List[str]] = None
    state_management: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, omitting fields that do not apply."""
        data: Dict[str, Any] = {
            "element": self.element,
            "summary": self.summary,
            "integration_points": list(self.integration_points),
            "usage_example": self.usage_example,
        }
        if self.parameters is not None:
            data["parameters"] = list(self.parameters)
        if self.returns is not None:
            data["returns"] = self.returns
        if self.raises is not None:
            data["raises"] = list(self.raises)
        if self.state_management is not None:
            data["state_management"] = self.state_management
        return data

    def validate(self) -> List[str]:
        """Validate mandatory fields and return any issues."""
        issues = []

        if not self.summary:
            issues.append(f"{self.element}: summary is required")
        if not self.integration_points:
            issues.append(f"{self.element}: at least one integration point is required")
        if not self.usage_example:
            issues.append(f"{self.element}: usage example is required")

        return issues


@dataclass(frozen=True, slots=True)
class StatusRecord:
    """Lifecycle state of one component."""

    component: str
    state: str = STATE_NOT_STARTED
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "component": self.component,
            "state": self.state,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True, slots=True)
class StatusLedger:
    """Explicit snapshot of every component's status record."""

    records: Tuple[StatusRecord, ...] = ()
    preamble: str = ""

    def state_of(self, component: str) -> str:
        record = self.get(component)
        return record.state if record else STATE_NOT_STARTED

    def get(self, component: str) -> Optional[StatusRecord]:
        wanted = component.lower()
        for record in self.records:
            if record.component.lower() == wanted:
                return record
        return None

    def with_record(self, record: StatusRecord) -> "StatusLedger":
        """Return a new ledger with this record added or replaced."""
        wanted = record.component.lower()
        records = list(self.records)
        for idx, item in enumerate(records):
            if item.component.lower() == wanted:
                records[idx] = record
                break
        else:
            records.append(record)
        return StatusLedger(records=tuple(records), preamble=self.preamble)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {record.component: record.to_dict() for record in self.records}


@dataclass(slots=True)
class WorkflowStep:
    """Represents a single step in the archrun workflow."""

    step_number: int
    name: str
    tool_name: str
    description: str
    purpose: str
    prerequisites: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "step": self.step_number,
            "name": self.name,
            "tool": self.tool_name,
            "description": self.description,
            "purpose": self.purpose,
            "prerequisites": list(self.prerequisites),
        }


WORKFLOW_STEPS = [
    WorkflowStep(
        step_number=1,
        name="Locate Documents",
        tool_name="locate_documents",
        description="Find the design artifact, status ledger and readme, including git-ignored copies",
        purpose="Make sure there is an architecture to plan against",
    ),
    WorkflowStep(
        step_number=2,
        name="Resolve Component",
        tool_name="resolve_component",
        description="Match the requested name against the design catalog",
        purpose="Never implement the wrong component; confirm suggestions explicitly",
        prerequisites=["Locate Documents"],
    ),
    WorkflowStep(
        step_number=3,
        name="Plan and Sequence",
        tool_name="run",
        description="Expand the component into tiered work units and sequence them into commits",
        purpose="Foundations before consumers, code before documentation",
        prerequisites=["Resolve Component"],
    ),
    WorkflowStep(
        step_number=4,
        name="Deliver Units",
        tool_name="next_unit, complete_unit",
        description="Implement and commit one unit at a time, strictly in plan order",
        purpose="Every commit is one atomic, reviewable change",
        prerequisites=["Plan and Sequence"],
    ),
    WorkflowStep(
        step_number=5,
        name="Document",
        tool_name="complete_unit",
        description="Synthesize documentation blocks once the code they describe exists",
        purpose="Docs describe the public surface that was actually built",
        prerequisites=["Deliver Units"],
    ),
    WorkflowStep(
        step_number=6,
        name="Track Status",
        tool_name="component_status",
        description="Review the component lifecycle in the status ledger",
        purpose="The ledger moves forward only: not-started, in-progress, done",
        prerequisites=["Document"],
    ),
]
