"""Domain models for the QA form computation engine.

Document store, template model, submission record and audit record.
"""

from .audit_record import AuditRecord
from .replay_result import DraftStat, ReplayResult
from .document import EMPTY, SubmissionDocument
from .submission import FinalizeResult, FormStatus, HealthStatus, Submission
from .template import FieldDependency, FieldKind, FormField, FormSection, FormTemplate, TableColumn

__all__ = [
    # Document
    "EMPTY",
    "SubmissionDocument",
    # Template
    "FieldDependency",
    "FieldKind",
    "FormField",
    "FormSection",
    "FormTemplate",
    "TableColumn",
    # Submission lifecycle
    "AuditRecord",
    "FinalizeResult",
    "FormStatus",
    "HealthStatus",
    "Submission",
    # Replay
    "DraftStat",
    "ReplayResult",
]
