"""archrun - turn an architecture document into ordered commits and docs."""

from .errors import (
    AmbiguousMatch,
    ArchRunError,
    ConfirmationRequired,
    DesignDocumentError,
    InvalidTransition,
    MissingDesignDoc,
    NotFound,
    SequencingError,
)
from .models import (
    CodeUnitResult,
    CommitDescriptor,
    ComponentSpec,
    DeliveryPlan,
    DesignDocument,
    DocBlock,
    StatusLedger,
    StatusRecord,
    WorkUnit,
)
from .workspace import Workspace
from .workflow import WorkflowManager

__version__ = "0.1.0"

__all__ = [
    "AmbiguousMatch",
    "ArchRunError",
    "CodeUnitResult",
    "CommitDescriptor",
    "ComponentSpec",
    "ConfirmationRequired",
    "DeliveryPlan",
    "DesignDocument",
    "DesignDocumentError",
    "DocBlock",
    "InvalidTransition",
    "MissingDesignDoc",
    "NotFound",
    "SequencingError",
    "StatusLedger",
    "StatusRecord",
    "WorkUnit",
    "Workspace",
    "WorkflowManager",
]
