"""Reservation audit trail.

``log_action`` is the only write path and always runs inside the caller's
session, so the audit row commits or rolls back together with the mutation
it describes. Entries are never updated or deleted.

Diffs are flat ``{field: {"old": ..., "new": ...}}`` maps; nested extras are
flattened to ``extras.<key>`` so one diff fully describes a mutation.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil import parser as date_parser
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from reservation_engine.core.errors import NotFoundError, ValidationError
from reservation_engine.core.validators import RequestContext
from reservation_engine.db.base import as_utc
from reservation_engine.models.audit import ReservationAudit
from reservation_engine.models.reservation import Reservation

logger = logging.getLogger("audit")

# Bookkeeping columns that change on every write
IGNORED_DIFF_FIELDS = {"id", "created_at", "updated_at", "lock_version", "flags"}

MAX_RECENT_LIMIT = 500


# ===== DIFF HELPERS =====

def build_diff(old: Optional[Dict[str, Any]], new: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Field-level diff between two snapshots, extras flattened."""
    old = old or {}
    new = new or {}
    diff: Dict[str, Dict[str, Any]] = {}

    for key in sorted(set(old) | set(new)):
        if key in IGNORED_DIFF_FIELDS:
            continue
        before, after = old.get(key), new.get(key)
        if key == "extras" and (isinstance(before, dict) or isinstance(after, dict)):
            before, after = before or {}, after or {}
            for extra_key in sorted(set(before) | set(after)):
                if before.get(extra_key) != after.get(extra_key):
                    diff[f"extras.{extra_key}"] = {"old": before.get(extra_key), "new": after.get(extra_key)}
            continue
        if before != after:
            diff[key] = {"old": before, "new": after}

    return diff


def diff_summary(diff: Dict[str, Any]) -> str:
    """One-line description such as ``2 fields changed: memo, total_amount``."""
    if not diff:
        return "No changes"
    fields = sorted(diff)
    noun = "field" if len(fields) == 1 else "fields"
    return f"{len(fields)} {noun} changed: {', '.join(fields)}"


# ===== WRITE PATH =====

def log_action(
    db: Session,
    booking_id: int,
    action: str,
    context: Optional[RequestContext] = None,
    diff: Optional[Dict[str, Any]] = None,
    previous_values: Optional[Dict[str, Any]] = None,
    current_values: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> ReservationAudit:
    """Append an audit entry to the caller's transaction.

    Args:
        db: The session that carries the mutation being audited.
        booking_id: Reservation the entry belongs to.
        action: create, update, cancel, delete, restore or a bulk_* action.
        context: Actor and request metadata.
        diff: Changed fields only.
        previous_values: Snapshot before the mutation.
        current_values: Snapshot after the mutation.
        reason: Free-text justification.
        request_id: Overrides ``context.request_id`` (bulk items use a suffixed id).
    """
    if not action:
        raise ValueError("audit action is required")
    context = context or RequestContext()

    entry = ReservationAudit(
        booking_id=booking_id,
        actor=context.actor or "system",
        action=action,
        diff=diff,
        previous_values=previous_values,
        current_values=current_values,
        reason=reason,
        ip_address=context.ip_address,
        user_agent=context.user_agent[:500] if context.user_agent else None,
        request_id=request_id or context.request_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()
    logger.info(f"{action} booking={booking_id} actor={entry.actor} request={entry.request_id}")
    return entry


# ===== SERIALIZATION =====

def serialize_audit(entry: ReservationAudit, **extra: Any) -> Dict[str, Any]:
    created_at = as_utc(entry.created_at)
    data = {
        "id": entry.id,
        "booking_id": entry.booking_id,
        "actor": entry.actor,
        "action": entry.action,
        "diff": entry.diff or {},
        "previous_values": entry.previous_values,
        "current_values": entry.current_values,
        "reason": entry.reason,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "request_id": entry.request_id,
        "created_at": created_at.isoformat() if created_at else None,
        "summary": diff_summary(entry.diff or {}),
    }
    data.update(extra)
    return data


def _parse_bound(value: Any, end_of_day: bool = False) -> Optional[datetime]:
    """Parse a date or date-time filter bound into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text_value = str(value).strip()
        try:
            parsed = date_parser.parse(text_value)
        except (ValueError, OverflowError) as e:
            raise ValidationError(
                f"Invalid date: {value}",
                details=[{"field": "date", "code": "format", "message": str(e)}],
            )
        if end_of_day and len(text_value) <= 10:
            parsed = parsed + timedelta(days=1)
    return as_utc(parsed)


class AuditService:
    """Read-only query surface over the audit trail."""

    def __init__(self, db: Session):
        self.db = db

    def _joined(self):
        return self.db.query(
            ReservationAudit, Reservation.reservation_number, Reservation.korean_name,
        ).outerjoin(Reservation, Reservation.id == ReservationAudit.booking_id)

    @staticmethod
    def _with_booking(rows: Iterable[Tuple[ReservationAudit, Optional[str], Optional[str]]]) -> List[Dict[str, Any]]:
        return [
            serialize_audit(entry, reservation_number=number, korean_name=name)
            for entry, number, name in rows
        ]

    def query(
        self,
        booking_id: int,
        page: int = 1,
        page_size: int = 20,
        action: Optional[str] = None,
    ) -> Tuple[List[ReservationAudit], int]:
        query = self.db.query(ReservationAudit).filter(ReservationAudit.booking_id == booking_id)
        if action:
            query = query.filter(ReservationAudit.action == action)
        total = query.count()
        rows = (
            query.order_by(ReservationAudit.created_at.desc(), ReservationAudit.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return rows, total

    def history(self, booking_id: int, limit: int = 20) -> List[ReservationAudit]:
        rows, _ = self.query(booking_id, page=1, page_size=limit)
        return rows

    def count_for(self, booking_id: int, action: Optional[str] = None) -> int:
        query = self.db.query(func.count(ReservationAudit.id)).filter(ReservationAudit.booking_id == booking_id)
        if action:
            query = query.filter(ReservationAudit.action == action)
        return query.scalar() or 0

    def recent(
        self,
        hours: int = 24,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Entries across all reservations within the last ``hours``."""
        limit = max(1, min(limit, MAX_RECENT_LIMIT))
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        query = self._joined().filter(ReservationAudit.created_at >= cutoff)
        if actor:
            query = query.filter(ReservationAudit.actor == actor)
        if action:
            query = query.filter(ReservationAudit.action == action)
        rows = query.order_by(ReservationAudit.created_at.desc(), ReservationAudit.id.desc()).limit(limit).all()
        return self._with_booking(rows)

    def search(
        self,
        booking_ids: Optional[List[int]] = None,
        actors: Optional[List[str]] = None,
        actions: Optional[List[str]] = None,
        date_from: Any = None,
        date_to: Any = None,
        search_term: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = self._joined()
        if booking_ids:
            query = query.filter(ReservationAudit.booking_id.in_(booking_ids))
        if actors:
            query = query.filter(ReservationAudit.actor.in_(actors))
        if actions:
            query = query.filter(ReservationAudit.action.in_(actions))

        start = _parse_bound(date_from)
        end = _parse_bound(date_to, end_of_day=True)
        if start:
            query = query.filter(ReservationAudit.created_at >= start)
        if end:
            query = query.filter(ReservationAudit.created_at < end)

        if search_term and search_term.strip():
            like = f"%{search_term.strip()}%"
            query = query.filter(or_(
                ReservationAudit.reason.ilike(like),
                Reservation.reservation_number.ilike(like),
                Reservation.korean_name.ilike(like),
            ))

        total = query.count()
        rows = (
            query.order_by(ReservationAudit.created_at.desc(), ReservationAudit.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return self._with_booking(rows), total

    def statistics(self, days: int = 7) -> Dict[str, Any]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        base = self.db.query(ReservationAudit).filter(ReservationAudit.created_at >= cutoff)

        day = func.date(ReservationAudit.created_at)
        daily_rows = (
            base.with_entities(
                day.label("day"),
                func.count(ReservationAudit.id),
                func.count(func.distinct(ReservationAudit.actor)),
                func.count(func.distinct(ReservationAudit.booking_id)),
            )
            .group_by(day)
            .order_by(day.desc())
            .all()
        )
        actor_rows = (
            base.with_entities(ReservationAudit.actor, func.count(ReservationAudit.id).label("cnt"))
            .group_by(ReservationAudit.actor)
            .order_by(func.count(ReservationAudit.id).desc())
            .limit(10)
            .all()
        )
        action_rows = (
            base.with_entities(ReservationAudit.action, func.count(ReservationAudit.id).label("cnt"))
            .group_by(ReservationAudit.action)
            .order_by(func.count(ReservationAudit.id).desc())
            .all()
        )

        return {
            "period_days": days,
            "total_actions": sum(count for _, count in action_rows),
            "daily_counts": [
                {"date": str(day_value), "total_actions": total, "unique_actors": actors, "unique_bookings": bookings}
                for day_value, total, actors, bookings in daily_rows
            ],
            "top_actors": [{"actor": actor, "action_count": count} for actor, count in actor_rows],
            "action_distribution": [{"action": action, "count": count} for action, count in action_rows],
        }

    def get(self, audit_id: int) -> Dict[str, Any]:
        row = self._joined().filter(ReservationAudit.id == audit_id).first()
        if not row:
            raise NotFoundError("Audit entry", audit_id)
        return self._with_booking([row])[0]
