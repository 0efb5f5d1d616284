"""
UploadBatch status state machine.

    pending → processing → staging_completed → processing → completed
    any non-terminal → error
    processing / staging_completed (stuck) → cancelled
    error → processing        (resume)
    error → completed         (watchdog reconciliation)
    any → pending             (administrative reset)
    any → rollback_executed   (explicit rollback)
"""

from __future__ import annotations

from volumetria.core.constants import UploadStatus
from volumetria.pipeline.errors import InvalidTransitionError

S = UploadStatus

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.ROLLBACK_EXECUTED})
ACTIVE_STATUSES = frozenset({S.PROCESSING, S.STAGING_COMPLETED})

ALLOWED_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    S.PENDING: frozenset({S.PROCESSING, S.ERROR, S.CANCELLED}),
    S.PROCESSING: frozenset({S.STAGING_COMPLETED, S.COMPLETED, S.ERROR, S.CANCELLED}),
    S.STAGING_COMPLETED: frozenset({S.PROCESSING, S.ERROR, S.CANCELLED}),
    S.ERROR: frozenset({S.PROCESSING, S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.ROLLBACK_EXECUTED: frozenset(),
}

# Administrative operations allowed from every state
UNIVERSAL_TARGETS = frozenset({S.PENDING, S.ROLLBACK_EXECUTED})


def can_transition(current: str, target: str) -> bool:
    current_status = UploadStatus(current)
    target_status = UploadStatus(target)
    if target_status in UNIVERSAL_TARGETS:
        return True
    return target_status in ALLOWED_TRANSITIONS[current_status]


def ensure_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless current → target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(str(current), str(target))
