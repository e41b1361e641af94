from .models import CompositingDiagnostic, DiagnosticKind
from .sink import (
    CollectingDiagnosticsSink,
    DiagnosticsSink,
    NullDiagnosticsSink,
    safe_record,
)

__all__ = [
    "CompositingDiagnostic",
    "DiagnosticKind",
    "DiagnosticsSink",
    "NullDiagnosticsSink",
    "CollectingDiagnosticsSink",
    "safe_record",
]
