"""Reservation record store.

Every mutation follows the same path:

1. lock the live row (``SELECT ... FOR UPDATE``),
2. check the caller's version / timestamp precondition,
3. normalize and validate the merged record against the live field catalog,
4. apply it with ``UPDATE ... WHERE id = :id AND lock_version = :seen``,
   treating an affected-row count other than one as a lost race,
5. write exactly one audit entry in the same transaction,
6. commit, then publish a ``MutationEvent``.

Single-record operations are all-or-nothing. The bulk engine reuses the
same steps through ``apply_change`` inside per-item savepoints.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reservation_engine.core.config import settings
from reservation_engine.core.errors import (
    AppError,
    BusinessRuleError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    translate_integrity_error,
)
from reservation_engine.core.validators import RequestContext
from reservation_engine.db.base import as_utc, utcnow
from reservation_engine.models.audit import AuditAction
from reservation_engine.models.reservation import (
    CORE_FIELDS,
    EDITABLE_REVIEW_STATUSES,
    MONEY_FIELDS,
    PAYMENT_STATUSES,
    REVIEW_STATUSES,
    Reservation,
)
from reservation_engine.services.audit_service import AuditService, build_diff, log_action, serialize_audit
from reservation_engine.services.change_notifier import ChangeNotifier, MutationEvent, change_notifier
from reservation_engine.services.field_definition_service import FieldDefinitionService
from reservation_engine.services.normalize_service import (
    deep_merge,
    derive_unit_price,
    generate_origin_hash,
    normalize_date,
    normalize_payment_status,
    normalize_reservation,
    to_decimal,
)
from reservation_engine.services.validation_service import check_data_quality, validate_reservation

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = (
    "id", "reservation_number", "korean_name", "usage_date", "total_amount",
    "payment_status", "review_status", "created_at", "updated_at",
)
DEFAULT_SORT = "created_at"

RESTORABLE_STATUSES = ("pending", "confirmed")
SEARCHABLE_FIELDS = (
    "reservation_number", "confirmation_number", "korean_name",
    "english_first_name", "english_last_name", "email", "product_name",
)


# ===== SERIALIZATION =====

def _plain(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    return value


def core_values(record: Reservation) -> Dict[str, Any]:
    """Fixed attributes of a stored record in normalized (JSON-safe) form."""
    values: Dict[str, Any] = {}
    for name in CORE_FIELDS:
        value = getattr(record, name)
        if name in MONEY_FIELDS:
            values[name] = float(value) if value is not None else None
        else:
            values[name] = _plain(value)
    return values


def serialize_reservation(record: Reservation) -> Dict[str, Any]:
    """Full JSON-safe snapshot, used for API responses and audit snapshots."""
    data: Dict[str, Any] = {"id": record.id}
    data.update(core_values(record))
    created_at, updated_at, deleted_at = (
        as_utc(record.created_at), as_utc(record.updated_at), as_utc(record.deleted_at),
    )
    data.update({
        "extras": dict(record.extras or {}),
        "flags": record.flags or {"missing": [], "ambiguous": []},
        "lock_version": record.lock_version,
        "origin_hash": record.origin_hash,
        "is_deleted": bool(record.is_deleted),
        "deleted_at": deleted_at.isoformat() if deleted_at else None,
        "created_at": created_at.isoformat() if created_at else None,
        "updated_at": updated_at.isoformat() if updated_at else None,
    })
    return data


def column_values(normalized: Dict[str, Any]) -> Dict[str, Any]:
    """Convert normalized fixed attributes into column-typed values."""
    values: Dict[str, Any] = {}
    for name in CORE_FIELDS:
        value = normalized.get(name)
        if name in MONEY_FIELDS:
            value = to_decimal(value)
        elif name == "usage_date" and value is not None:
            value = date.fromisoformat(value)
        elif name == "reservation_datetime" and value is not None:
            value = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
        values[name] = value
    return values


# ===== FILTERS =====

@dataclass
class ReservationFilters:
    """Filter vocabulary shared by listing and bulk target resolution."""

    q: Optional[str] = None
    status: Optional[str] = None
    review: Optional[str] = None
    channel: Optional[str] = None
    platform: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "ReservationFilters":
        data = dict(data or {})
        # "from"/"to" are the query-string spellings
        data.setdefault("date_from", data.pop("from", None))
        data.setdefault("date_to", data.pop("to", None))
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names and v not in (None, "")})

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def apply(self, query):
        if self.q and self.q.strip():
            like = f"%{self.q.strip()}%"
            query = query.filter(or_(*[getattr(Reservation, name).ilike(like) for name in SEARCHABLE_FIELDS]))
        if self.status:
            query = query.filter(Reservation.payment_status == self.status)
        if self.review:
            query = query.filter(Reservation.review_status == self.review)
        if self.channel:
            query = query.filter(Reservation.channel == self.channel)
        if self.platform:
            query = query.filter(Reservation.platform_name == self.platform)
        for bound, op in ((self.date_from, "ge"), (self.date_to, "le")):
            if not bound:
                continue
            parsed = normalize_date(bound)
            if parsed is None:
                raise ValidationError(
                    f"Invalid date filter: {bound}",
                    details=[{"field": "date_from" if op == "ge" else "date_to", "code": "format",
                              "message": "must be a date (YYYY-MM-DD)"}],
                )
            day = date.fromisoformat(parsed)
            query = query.filter(Reservation.usage_date >= day if op == "ge" else Reservation.usage_date <= day)
        return query


class ReservationService:
    """Create, read, update and lifecycle operations on reservations."""

    def __init__(self, db: Session, notifier: Optional[ChangeNotifier] = None):
        self.db = db
        self.notifier = notifier or change_notifier
        self.field_definitions = FieldDefinitionService(db)

    # ===== READ =====

    def _live(self):
        return self.db.query(Reservation).filter(Reservation.not_deleted())

    def get(self, reservation_id: int) -> Reservation:
        record = self._live().filter(Reservation.id == reservation_id).first()
        if not record:
            raise NotFoundError("Reservation", reservation_id)
        return record

    def get_detail(self, reservation_id: int) -> Dict[str, Any]:
        record = self.get(reservation_id)
        definitions = self.field_definitions.active_definitions()
        audits = AuditService(self.db)
        history = audits.history(reservation_id, limit=settings.audit_history_limit)
        flags = record.flags or {}
        return {
            "reservation": serialize_reservation(record),
            "field_definitions": definitions,
            "audit_history": [serialize_audit(entry) for entry in history],
            "metadata": {
                "has_extras": bool(record.extras),
                "has_flags": bool(flags.get("missing") or flags.get("ambiguous")),
                "needs_review": record.review_status == "needs_review",
                "is_editable": record.review_status in EDITABLE_REVIEW_STATUSES,
                "lock_version": record.lock_version,
                "audit_count": audits.count_for(reservation_id),
            },
        }

    def list(
        self,
        filters: Optional[ReservationFilters] = None,
        page: int = 1,
        page_size: int = 20,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Tuple[List[Reservation], int]:
        filters = filters or ReservationFilters()
        query = filters.apply(self._live())
        total = query.count()

        column = getattr(Reservation, sort if sort in SORTABLE_FIELDS else DEFAULT_SORT)
        descending = (order or "desc").lower() != "asc"
        query = query.order_by(
            column.desc() if descending else column.asc(),
            Reservation.id.desc() if descending else Reservation.id.asc(),
        )
        rows = query.offset((max(page, 1) - 1) * page_size).limit(page_size).all()
        return rows, total

    def statistics(self) -> Dict[str, Any]:
        live = self._live()
        total = live.count()

        by_payment = dict(
            live.with_entities(Reservation.payment_status, func.count(Reservation.id))
            .group_by(Reservation.payment_status).all()
        )
        by_review = dict(
            live.with_entities(Reservation.review_status, func.count(Reservation.id))
            .group_by(Reservation.review_status).all()
        )
        revenue, average = (
            live.filter(Reservation.payment_status == "confirmed")
            .with_entities(func.coalesce(func.sum(Reservation.total_amount), 0), func.avg(Reservation.total_amount))
            .one()
        )
        return {
            "total_reservations": total,
            "by_payment_status": {status: by_payment.get(status, 0) for status in PAYMENT_STATUSES},
            "by_review_status": {status: by_review.get(status, 0) for status in REVIEW_STATUSES},
            "needs_review": by_review.get("needs_review", 0),
            "cancelled": by_payment.get("cancelled", 0),
            "total_revenue": float(to_decimal(revenue) or 0),
            "average_amount": float(to_decimal(average) or 0),
        }

    def find_by_origin_hash(self, origin_hash: str) -> Optional[Reservation]:
        return self._live().filter(Reservation.origin_hash == origin_hash).first()

    # ===== WRITE HELPERS =====

    def lock_for_update(self, reservation_id: int, include_deleted: bool = False) -> Reservation:
        query = self.db.query(Reservation).filter(Reservation.id == reservation_id)
        if not include_deleted:
            query = query.filter(Reservation.not_deleted())
        record = query.with_for_update().populate_existing().first()
        if not record:
            raise NotFoundError("Reservation", reservation_id)
        return record

    def _duplicate_of(self, reservation_number: str, channel: str, exclude_id: Optional[int] = None) -> Optional[int]:
        query = self.db.query(Reservation.id).filter(
            Reservation.reservation_number == reservation_number,
            Reservation.channel == channel,
            Reservation.not_deleted(),
        )
        if exclude_id is not None:
            query = query.filter(Reservation.id != exclude_id)
        row = query.first()
        return row[0] if row else None

    def _ensure_unique(self, reservation_number: str, channel: str, exclude_id: Optional[int] = None) -> None:
        existing_id = self._duplicate_of(reservation_number, channel, exclude_id)
        if existing_id:
            raise ConflictError(
                f"Reservation {reservation_number} already exists for channel {channel}",
                error_code="DUPLICATE_RESERVATION",
                details={"existing_id": existing_id},
            )

    def _prepare(self, merged: Dict[str, Any], definitions: list) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Normalize, validate and flag a merged record."""
        normalized = normalize_reservation(merged, definitions)
        result = validate_reservation(normalized, definitions)
        if not result.valid:
            raise ValidationError("Validation failed", details=result.error_dicts())
        flags = check_data_quality(normalized, definitions)
        return normalized, flags

    def _current_flags(self, record: Reservation, values: Dict[str, Any]) -> Dict[str, List[str]]:
        snapshot = core_values(record)
        snapshot["extras"] = dict(record.extras or {})
        snapshot.update({name: _plain(value) for name, value in values.items() if name in CORE_FIELDS})
        return check_data_quality(snapshot, self.field_definitions.active_definitions())

    def apply_change(
        self,
        record: Reservation,
        values: Dict[str, Any],
        action: str,
        context: RequestContext,
        reason: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Conditionally write ``values`` to a locked record and audit it.

        Data-quality flags are recomputed unless ``values`` carries them.
        Does not commit. Returns the audit diff; raises ConflictError when
        another writer bumped the version first.
        """
        if "flags" not in values:
            values = {**values, "flags": self._current_flags(record, values)}
        before = serialize_reservation(record)
        seen_version = record.lock_version

        result = self.db.execute(
            update(Reservation)
            .where(Reservation.id == record.id, Reservation.lock_version == seen_version)
            .values(**values, lock_version=seen_version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.db.query(Reservation.lock_version).filter(Reservation.id == record.id).scalar()
            raise ConflictError(
                "Reservation was modified by another user. Please refresh and try again.",
                error_code="CONFLICT_VERSION",
                details={"current_version": current, "provided_version": seen_version},
            )

        self.db.refresh(record)
        after = serialize_reservation(record)
        diff = build_diff(before, after)
        log_action(
            self.db,
            booking_id=record.id,
            action=action,
            context=context,
            diff=diff,
            previous_values=before,
            current_values=after,
            reason=reason,
            request_id=request_id,
        )
        return diff

    @staticmethod
    def integrity_error(exc: IntegrityError) -> AppError:
        error = translate_integrity_error(exc, "reservation")
        if error.error_code == "DUPLICATE_ENTRY":
            error.error_code = "DUPLICATE_RESERVATION"
        return error

    @contextmanager
    def _transaction(self):
        """Run a single-record write; roll back on any failure, commit on success."""
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self.integrity_error(e)
        except AppError:
            self.db.rollback()
            raise

    def _publish(self, event_type: str, record_ids: List[int], action: str, context: RequestContext, **data: Any):
        self.notifier.publish(MutationEvent(
            event_type=event_type,
            booking_ids=record_ids,
            action=action,
            actor=context.actor,
            request_id=context.request_id,
            data=data,
        ))

    # ===== CREATE =====

    def create(self, payload: Dict[str, Any], context: Optional[RequestContext] = None) -> Reservation:
        """Normalize, validate and insert a new reservation."""
        context = context or RequestContext()

        with self._transaction():
            definitions = self.field_definitions.active_definitions()
            normalized, flags = self._prepare(payload, definitions)

            origin_hash = generate_origin_hash(payload.get("_raw_text"))
            if origin_hash:
                existing = self.find_by_origin_hash(origin_hash)
                if existing:
                    raise ConflictError(
                        "This source text was already imported",
                        error_code="DUPLICATE_IMPORT",
                        details={"existing_id": existing.id},
                    )
            self._ensure_unique(normalized["reservation_number"], normalized["channel"])

            record = Reservation(
                **column_values(normalized),
                extras=normalized["extras"],
                flags=flags,
                origin_hash=origin_hash,
                lock_version=1,
            )
            self.db.add(record)
            self.db.flush()
            log_action(
                self.db,
                booking_id=record.id,
                action=AuditAction.CREATE,
                context=context,
                current_values=serialize_reservation(record),
                reason=payload.get("_reason") or "Reservation created",
            )

        logger.info(f"Reservation {record.id} created ({record.reservation_number}/{record.channel})")
        self._publish("booking.create", [record.id], AuditAction.CREATE, context,
                      reservation_number=record.reservation_number)
        return record

    # ===== UPDATE =====

    @staticmethod
    def _release_derived_prices(current: Dict[str, Any], changes: Dict[str, Any]) -> None:
        """Let unit prices that were derived from the old total be re-derived."""
        if "adult_unit_price" in changes:
            return
        if "total_amount" not in changes and "people_adult" not in changes:
            return
        derived = derive_unit_price(current.get("total_amount"), current.get("people_adult"))
        adult_price = current.get("adult_unit_price")
        if adult_price is None or adult_price == derived:
            if "child_unit_price" not in changes and current.get("child_unit_price") == adult_price:
                current["child_unit_price"] = None
            current["adult_unit_price"] = None

    @staticmethod
    def _check_preconditions(
        record: Reservation,
        expected_version: Optional[int],
        if_unmodified_since: Optional[datetime],
    ) -> None:
        if if_unmodified_since is not None:
            stored = as_utc(record.updated_at).replace(microsecond=0)
            provided = as_utc(if_unmodified_since)
            if stored > provided:
                raise ConflictError(
                    "Reservation was modified after the given time. Please refresh and try again.",
                    error_code="CONFLICT_TIMESTAMP",
                    details={"current_updated_at": stored.isoformat(), "provided": provided.isoformat()},
                )
        if expected_version is not None and expected_version != record.lock_version:
            raise ConflictError(
                "Reservation was modified by another user. Please refresh and try again.",
                error_code="CONFLICT_VERSION",
                details={"current_version": record.lock_version, "provided_version": expected_version},
            )

    def update(
        self,
        reservation_id: int,
        changes: Dict[str, Any],
        context: Optional[RequestContext] = None,
        expected_version: Optional[int] = None,
        if_unmodified_since: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> Tuple[Reservation, Dict[str, Any]]:
        """Merge a partial update into a reservation.

        Fixed attributes are replaced, ``extras`` is deep-merged. Returns the
        refreshed record and the audit diff.
        """
        context = context or RequestContext()

        with self._transaction():
            record = self.lock_for_update(reservation_id)
            self._check_preconditions(record, expected_version, if_unmodified_since)

            definitions = self.field_definitions.active_definitions()
            core_changes = {k: v for k, v in changes.items() if k in CORE_FIELDS}
            extras_changes = changes.get("extras") if isinstance(changes.get("extras"), dict) else {}

            merged = core_values(record)
            self._release_derived_prices(merged, core_changes)
            merged.update(core_changes)
            stored_extras = dict(record.extras or {})
            merged["extras"] = deep_merge(stored_extras, extras_changes)

            normalized, flags = self._prepare(merged, definitions)

            if (normalized["reservation_number"], normalized["channel"]) != (record.reservation_number, record.channel):
                self._ensure_unique(normalized["reservation_number"], normalized["channel"], record.id)

            diff = self.apply_change(
                record,
                {**column_values(normalized), "extras": normalized["extras"], "flags": flags},
                AuditAction.UPDATE,
                context,
                reason=reason or "Manual update",
            )

        logger.info(f"Reservation {record.id} updated to v{record.lock_version}: {', '.join(diff) or 'no changes'}")
        self._publish("booking.update", [record.id], AuditAction.UPDATE, context,
                      changed_fields=list(diff), lock_version=record.lock_version)
        return record, diff

    def update_status(
        self,
        reservation_id: int,
        payment_status: Optional[str] = None,
        review_status: Optional[str] = None,
        context: Optional[RequestContext] = None,
        expected_version: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Tuple[Reservation, Dict[str, Any]]:
        """Quick status change without re-running the full pipeline."""
        context = context or RequestContext()
        values: Dict[str, Any] = {}
        errors = []
        if payment_status is not None:
            payment_status = normalize_payment_status(payment_status)
            if payment_status not in PAYMENT_STATUSES:
                errors.append({"field": "payment_status", "code": "enum",
                               "message": f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}"})
            values["payment_status"] = payment_status
        if review_status is not None:
            review_status = str(review_status).strip().lower()
            if review_status not in REVIEW_STATUSES:
                errors.append({"field": "review_status", "code": "enum",
                               "message": f"review_status must be one of: {', '.join(REVIEW_STATUSES)}"})
            values["review_status"] = review_status
        if not values:
            errors.append({"field": "payment_status", "code": "required",
                           "message": "payment_status or review_status is required"})
        if errors:
            raise ValidationError("Validation failed", details=errors)

        with self._transaction():
            record = self.lock_for_update(reservation_id)
            self._check_preconditions(record, expected_version, None)
            diff = self.apply_change(record, values, AuditAction.UPDATE, context, reason=reason or "Status update")

        self._publish("booking.update", [record.id], AuditAction.UPDATE, context,
                      changed_fields=list(diff), lock_version=record.lock_version)
        return record, diff

    # ===== LIFECYCLE =====

    def cancel_record(
        self,
        record: Reservation,
        context: RequestContext,
        reason: Optional[str] = None,
        action: str = AuditAction.CANCEL,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Cancel an already-locked record without committing."""
        if record.payment_status == "cancelled":
            raise BusinessRuleError(
                "Reservation is already cancelled", error_code="ALREADY_CANCELLED",
                details={"id": record.id},
            )
        return self.apply_change(
            record,
            {"payment_status": "cancelled", "review_status": "cancelled"},
            action,
            context,
            reason=reason or "Cancelled",
            request_id=request_id,
        )

    def cancel(self, reservation_id: int, reason: Optional[str] = None,
               context: Optional[RequestContext] = None) -> Reservation:
        context = context or RequestContext()
        with self._transaction():
            record = self.lock_for_update(reservation_id)
            self.cancel_record(record, context, reason)

        logger.info(f"Reservation {reservation_id} cancelled by {context.actor}")
        self._publish("booking.cancel", [reservation_id], AuditAction.CANCEL, context, reason=reason)
        return record

    def soft_delete_record(
        self,
        record: Reservation,
        context: RequestContext,
        reason: Optional[str] = None,
        action: str = AuditAction.DELETE,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Soft-delete an already-locked record without committing."""
        return self.apply_change(
            record,
            {"is_deleted": True, "deleted_at": utcnow()},
            action,
            context,
            reason=reason or "Deleted",
            request_id=request_id,
        )

    def soft_delete(self, reservation_id: int, reason: Optional[str] = None,
                    context: Optional[RequestContext] = None) -> Reservation:
        context = context or RequestContext()
        with self._transaction():
            record = self.lock_for_update(reservation_id)
            self.soft_delete_record(record, context, reason)

        logger.info(f"Reservation {reservation_id} soft-deleted by {context.actor}")
        self._publish("booking.delete", [reservation_id], AuditAction.DELETE, context, hard_delete=False)
        return record

    def hard_delete(self, reservation_id: int, reason: Optional[str] = None,
                    context: Optional[RequestContext] = None) -> Dict[str, Any]:
        """Physically remove a row. Its audit history is kept."""
        if not settings.allow_hard_delete:
            raise ForbiddenError("Hard delete is disabled on this server", error_code="HARD_DELETE_DISABLED")
        context = context or RequestContext()

        with self._transaction():
            record = self.lock_for_update(reservation_id, include_deleted=True)
            values = {} if record.is_deleted else {"is_deleted": True, "deleted_at": utcnow()}
            self.apply_change(record, values, AuditAction.DELETE, context,
                              reason=f"[hard delete] {reason or 'Deleted'}")
            snapshot = serialize_reservation(record)
            self.db.delete(record)
            self.db.flush()

        logger.warning(f"Reservation {reservation_id} hard-deleted by {context.actor}")
        self._publish("booking.delete", [reservation_id], AuditAction.DELETE, context, hard_delete=True)
        return snapshot

    @staticmethod
    def _restore_window(record: Reservation) -> Dict[str, Any]:
        updated_at = as_utc(record.updated_at)
        elapsed = (datetime.now(timezone.utc) - updated_at).total_seconds() / 3600
        window = settings.restore_window_hours
        return {
            "updated_at": updated_at.isoformat(),
            "hours_elapsed": round(elapsed, 2),
            "hours_remaining": round(max(0.0, window - elapsed), 2),
            "window_hours": window,
            "within_window": elapsed <= window,
        }

    def restore_eligibility(self, reservation_id: int) -> Dict[str, Any]:
        record = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not record:
            raise NotFoundError("Reservation", reservation_id)

        time_info = self._restore_window(record)
        restorable_state = record.is_deleted or record.payment_status == "cancelled"
        if not restorable_state:
            reason = "Reservation is not cancelled or deleted"
        elif not time_info["within_window"]:
            reason = f"Restore window of {time_info['window_hours']} hours has expired"
        else:
            reason = "Reservation can be restored"
        return {
            "id": record.id,
            "can_restore": bool(restorable_state and time_info["within_window"]),
            "reason": reason,
            "time_info": time_info,
            "current_status": {
                "payment_status": record.payment_status,
                "review_status": record.review_status,
                "is_deleted": bool(record.is_deleted),
            },
        }

    def restore(
        self,
        reservation_id: int,
        new_status: str = "pending",
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> Reservation:
        """Bring back a cancelled or deleted reservation inside the restore window."""
        context = context or RequestContext()
        if new_status not in RESTORABLE_STATUSES:
            raise ValidationError(
                "Invalid restore status",
                details=[{"field": "new_status", "code": "enum",
                          "message": f"new_status must be one of: {', '.join(RESTORABLE_STATUSES)}"}],
            )

        with self._transaction():
            record = self.lock_for_update(reservation_id, include_deleted=True)
            if not (record.is_deleted or record.payment_status == "cancelled"):
                raise BusinessRuleError(
                    "Only cancelled or deleted reservations can be restored",
                    error_code="NOT_RESTORABLE",
                )
            window = self._restore_window(record)
            if not window["within_window"]:
                raise ForbiddenError(
                    f"Restore window of {window['window_hours']} hours has expired",
                    error_code="RESTORE_WINDOW_EXPIRED",
                    details=window,
                )
            if record.is_deleted:
                self._ensure_unique(record.reservation_number, record.channel, record.id)
            self.apply_change(
                record,
                {
                    "is_deleted": False,
                    "deleted_at": None,
                    "payment_status": new_status,
                    "review_status": "needs_review",
                },
                AuditAction.RESTORE,
                context,
                reason=reason or "Restored",
            )

        logger.info(f"Reservation {reservation_id} restored to {new_status} by {context.actor}")
        self._publish("booking.restore", [reservation_id], AuditAction.RESTORE, context, new_status=new_status)
        return record
