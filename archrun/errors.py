"""Error taxonomy for archrun.

Every error is raised at the point of detection and reported to the caller
synchronously. None of them are retried: resolution, planning and ledger
updates are deterministic, so repeating an operation cannot change its outcome.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ArchRunError(Exception):
    """Base class for all archrun failures."""

    kind = "archrun_error"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"error_kind": self.kind, "error": str(self)}


class DesignDocumentError(ArchRunError, ValueError):
    """The design artifact exists but its catalog cannot be parsed."""

    kind = "design_document_error"


class LedgerError(ArchRunError, ValueError):
    """The status ledger exists but records something archrun cannot read."""

    kind = "ledger_error"


class MissingDesignDoc(ArchRunError):
    """No design artifact was found in the workspace."""

    kind = "missing_design_doc"

    def __init__(self, root: str):
        self.root = root
        super().__init__(
            f"No design artifact (ARCHITECTURE.md, DESIGN.md, ...) found under '{root}'. "
            "Planning halts rather than guessing the architecture."
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["root"] = self.root
        return data


class NotFound(ArchRunError, LookupError):
    """The requested component matches nothing in the catalog."""

    kind = "not_found"

    def __init__(self, requested: str, catalog: Optional[List[str]] = None):
        self.requested = requested
        self.catalog = list(catalog or [])
        self.suggestions: List[str] = []
        super().__init__(f"No component matches '{requested}'.")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "requested": self.requested,
            "suggestions": [],
            "catalog": list(self.catalog),
        })
        return data


class AmbiguousMatch(ArchRunError, LookupError):
    """Several catalog entries are plausible; an external pick is required."""

    kind = "ambiguous_match"

    def __init__(self, requested: str, candidates: List[Any]):
        self.requested = requested
        self.candidates = list(candidates)
        names = ", ".join(candidate.name for candidate in self.candidates)
        super().__init__(f"'{requested}' is ambiguous; candidates: {names}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "requested": self.requested,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
        })
        return data


class SequencingError(ArchRunError, RuntimeError):
    """A plan would break the delivery ordering or atomicity rules."""

    kind = "sequencing_error"

    def __init__(self, message: str, unit_id: Optional[str] = None):
        self.unit_id = unit_id
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["unit_id"] = self.unit_id
        return data


class InvalidTransition(ArchRunError, ValueError):
    """A status ledger update that the lifecycle does not allow."""

    kind = "invalid_transition"

    def __init__(self, component: str, current: str, from_state: str, to_state: str):
        self.component = component
        self.current = current
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Cannot move '{component}' from {from_state} to {to_state} "
            f"(ledger state is {current})."
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "component": self.component,
            "current_state": self.current,
            "from_state": self.from_state,
            "to_state": self.to_state,
        })
        return data


class ConfirmationRequired(AmbiguousMatch):
    """A single non-exact candidate: a suggestion that must be confirmed."""

    kind = "confirmation_required"

    def __init__(self, requested: str, candidates: List[Any]):
        super().__init__(requested, candidates)
        self.args = (
            f"'{requested}' is not an exact component name; did you mean '{self.candidates[0].name}'? "
            "Confirm the suggestion before planning.",
        )
