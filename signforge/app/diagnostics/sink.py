from __future__ import annotations

import logging
from typing import List, Protocol

from signforge.app.diagnostics.models import CompositingDiagnostic

logger = logging.getLogger(__name__)


class DiagnosticsSink(Protocol):
    """
    Interface for observing skipped or degraded records.

    Implementations must be:
    - synchronous and cheap
    - fail-safe (recording failures must not break compositing)
    - observational only
    """

    def record(self, diagnostic: CompositingDiagnostic) -> None:
        ...


class NullDiagnosticsSink:
    """
    A safe no-op sink.

    Used when:
    - the caller does not care about skipped records
    - tests that only inspect the output bytes
    """

    def record(self, diagnostic: CompositingDiagnostic) -> None:
        return


class CollectingDiagnosticsSink:
    """
    List-backed sink that keeps diagnostics in recording order.
    """

    def __init__(self) -> None:
        self._items: List[CompositingDiagnostic] = []

    def record(self, diagnostic: CompositingDiagnostic) -> None:
        self._items.append(diagnostic)

    @property
    def items(self) -> List[CompositingDiagnostic]:
        return list(self._items)


def safe_record(sink: DiagnosticsSink, diagnostic: CompositingDiagnostic) -> None:
    """Forward a diagnostic, never letting the sink break the caller."""
    try:
        sink.record(diagnostic)
    except Exception:
        # Fail-safe: never let observability break compositing
        logger.warning(
            "diagnostics_sink_failed",
            extra={"kind": diagnostic.kind.value},
        )
