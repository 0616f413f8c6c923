from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.cancelled",
    "reservation.attendance_marked",
    "class.created",
    "class.updated",
    "class.deleted",
    "class.activated",
    "class.deactivated",
    "class.seats_recounted",
    "user.registered",
    "user.role_changed",
]
AuditActor = Literal["student", "instructor", "admin", "system"]


def _build_logger() -> logging.Logger:
    audit = logging.getLogger("audit")
    audit.setLevel(logging.INFO)
    if not audit.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(message)s"))
        audit.addHandler(stream)
    # audit lines bypass the root handlers
    audit.propagate = False
    return audit


_audit_logger = _build_logger()


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def emit_audit_log(
    *,
    action: AuditAction,
    actor: AuditActor,
    actor_id: Optional[int],
    reservation_id: Optional[int] = None,
    class_id: Optional[int] = None,
    student_id: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    occupied_seats: Optional[int] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write one audit event as compact JSON.

    Empty fields are omitted. Raises RuntimeError when the line cannot be
    written so the caller can abort the surrounding transaction.
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "actor": actor,
        "actor_id": actor_id,
        "request_id": get_request_id(),
        "reservation_id": reservation_id,
        "class_id": class_id,
        "student_id": student_id,
        "status_from": _as_text(status_from),
        "status_to": _as_text(status_to),
        "occupied_seats": occupied_seats,
        "message": message,
        **(extra or {}),
    }
    try:
        line = json.dumps({k: v for k, v in event.items() if v is not None}, ensure_ascii=True, default=str)
        _audit_logger.info(line)
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
