"""Append-only audit ledger embedded in each entitlement."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from .clock import Clock, current_time
from .exceptions import AuditAppendError, EntitlementNotFoundError
from .models import AuditAction, AuditEntry

if TYPE_CHECKING:
    from .store import EntitlementStore

logger = logging.getLogger(__name__)


def sequence_entry(entry: AuditEntry, existing: Sequence[AuditEntry]) -> AuditEntry:
    """Clamp ``performed_at`` so the trail stays non-decreasing."""

    if existing and entry.performed_at < existing[-1].performed_at:
        return entry.model_copy(update={"performed_at": existing[-1].performed_at})
    return entry


class AuditLedger:
    """Records state changes against an entitlement's audit trail."""

    def __init__(self, store: "EntitlementStore", *, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock

    def append(
        self,
        entitlement_id: str,
        action: AuditAction,
        performed_by: str,
        changes: Optional[Mapping[str, Any]] = None,
        reason: str = "",
    ) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            performed_by=performed_by,
            performed_at=current_time(self._clock),
            changes=dict(changes or {}),
            reason=reason,
        )
        try:
            stored = self._store.append_audit(entitlement_id, entry)
        except EntitlementNotFoundError:
            raise
        except Exception as exc:
            logger.exception(
                "Audit append failed entitlement=%s action=%s",
                entitlement_id,
                action.value,
            )
            raise AuditAppendError(entitlement_id, action.value) from exc
        if stored is None:
            raise EntitlementNotFoundError()
        return stored
