"""Bulk operations over many reservations.

A batch runs in one outer transaction. Each item gets its own SAVEPOINT, so a
failing item rolls back only itself while the rest of the batch commits.
Ids are locked in ascending order to keep concurrent batches from deadlocking.
"""

import csv
import io
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reservation_engine.core.config import settings
from reservation_engine.core.errors import AppError, ValidationError
from reservation_engine.core.validators import RequestContext
from reservation_engine.models.audit import AuditAction
from reservation_engine.models.reservation import CORE_FIELDS, PAYMENT_STATUSES, Reservation
from reservation_engine.services.change_notifier import ChangeNotifier, MutationEvent, change_notifier
from reservation_engine.services.normalize_service import normalize_payment_status
from reservation_engine.services.reservation_service import ReservationFilters, ReservationService

logger = logging.getLogger(__name__)

BULK_ACTIONS = ("cancel", "status", "delete", "export")

AUDIT_ACTIONS = {
    "cancel": AuditAction.BULK_CANCEL,
    "status": AuditAction.BULK_UPDATE,
    "delete": AuditAction.BULK_DELETE,
}

DEFAULT_EXPORT_FIELDS = (
    "id", "reservation_number", "korean_name", "email", "phone",
    "product_name", "usage_date", "total_amount", "payment_status", "created_at",
)
EXPORTABLE_FIELDS = ("id",) + CORE_FIELDS + ("extras", "flags", "lock_version", "created_at", "updated_at")


@dataclass
class BulkItemResult:
    id: int
    status: str  # success | skipped | error
    reason: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BulkResult:
    """Aggregate outcome of one batch."""

    action: str
    request_id: str
    target_count: int
    results: List[BulkItemResult] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return len(self.results)

    def _count(self, status: str) -> int:
        return sum(1 for item in self.results if item.status == status)

    @property
    def succeeded(self) -> int:
        return self._count("success")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def errors(self) -> int:
        return self._count("error")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "request_id": self.request_id,
            "target_count": self.target_count,
            "processed_count": self.processed_count,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "errors": self.errors,
            "results": [asdict(item) for item in self.results],
        }


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class BulkOperationService:
    """Resolve a target set and apply one action to every member."""

    def __init__(self, db: Session, notifier: Optional[ChangeNotifier] = None):
        self.db = db
        self.notifier = notifier or change_notifier
        self.reservations = ReservationService(db, notifier=self.notifier)

    # ===== TARGETS =====

    def resolve_targets(self, ids: Optional[List[Any]] = None, filters: Optional[Dict[str, Any]] = None) -> List[int]:
        """Explicit ids win over filters. Result is de-duplicated and ascending."""
        cap = settings.bulk_max_ids

        if ids:
            try:
                targets = sorted({int(value) for value in ids})
            except (TypeError, ValueError):
                raise ValidationError(
                    "ids must be integers",
                    details=[{"field": "ids", "code": "type", "message": "ids must be a list of integers"}],
                )
        elif filters:
            query = ReservationFilters.from_mapping(filters).apply(
                self.db.query(Reservation.id).filter(Reservation.not_deleted())
            )
            targets = [row[0] for row in query.order_by(Reservation.id.asc()).limit(cap + 1).all()]
        else:
            targets = []

        if not targets:
            raise ValidationError(
                "No reservations found to process",
                details=[{"field": "ids", "code": "required", "message": "ids or matching filters are required"}],
            )
        if len(targets) > cap:
            raise ValidationError(
                f"Too many reservations selected. Maximum {cap} allowed.",
                details=[{"field": "ids", "code": "range", "message": f"at most {cap} reservations per batch",
                          "params": {"max": cap}}],
            )
        return targets

    @staticmethod
    def _check_action(action: Optional[str], new_status: Optional[str]) -> Optional[str]:
        if action not in BULK_ACTIONS:
            raise ValidationError(
                f"Invalid action. Must be one of: {', '.join(BULK_ACTIONS)}",
                details=[{"field": "action", "code": "enum",
                          "message": f"action must be one of: {', '.join(BULK_ACTIONS)}"}],
            )
        if action != "status":
            return None
        status = normalize_payment_status(new_status) if new_status else None
        if status not in PAYMENT_STATUSES:
            raise ValidationError(
                "new_status is required for status update",
                details=[{"field": "new_status", "code": "enum",
                          "message": f"new_status must be one of: {', '.join(PAYMENT_STATUSES)}"}],
            )
        return status

    # ===== EXECUTION =====

    def _run_item(
        self,
        action: str,
        reservation_id: int,
        context: RequestContext,
        reason: Optional[str],
        new_status: Optional[str],
    ) -> BulkItemResult:
        store = self.reservations
        item_request_id = f"{context.request_id}_{reservation_id}"
        audit_action = AUDIT_ACTIONS[action]

        with self.db.begin_nested():
            record = store.lock_for_update(reservation_id, include_deleted=(action == "delete"))

            if action == "cancel":
                if record.payment_status == "cancelled":
                    return BulkItemResult(reservation_id, "skipped", "Already cancelled")
                store.cancel_record(record, context, reason or "Bulk cancel", audit_action, item_request_id)
                return BulkItemResult(reservation_id, "success", data={
                    "reservation_number": record.reservation_number,
                    "korean_name": record.korean_name,
                })

            if action == "status":
                old_status = record.payment_status
                if old_status == new_status:
                    return BulkItemResult(reservation_id, "skipped", "Already in target status")
                store.apply_change(
                    record, {"payment_status": new_status}, audit_action, context,
                    reason=reason or "Bulk status update", request_id=item_request_id,
                )
                return BulkItemResult(reservation_id, "success", data={
                    "reservation_number": record.reservation_number,
                    "old_status": old_status,
                    "new_status": new_status,
                })

            if record.is_deleted:
                return BulkItemResult(reservation_id, "skipped", "Already deleted")
            store.soft_delete_record(record, context, reason or "Bulk delete", audit_action, item_request_id)
            return BulkItemResult(reservation_id, "success", data={
                "reservation_number": record.reservation_number,
            })

    def run(
        self,
        action: str,
        ids: Optional[List[Any]] = None,
        filters: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
        new_status: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> BulkResult:
        """Apply cancel, status or delete to the target set.

        Per-item failures are reported in the result rather than raised; only
        invalid input or a failed final commit raise.
        """
        context = context or RequestContext()
        new_status = self._check_action(action, new_status)
        if action == "export":
            raise ValidationError("Use export_csv for export", details=[
                {"field": "action", "code": "enum", "message": "export is not a mutating action"},
            ])
        targets = self.resolve_targets(ids, filters)

        result = BulkResult(action=action, request_id=context.request_id, target_count=len(targets))
        for reservation_id in targets:
            try:
                item = self._run_item(action, reservation_id, context, reason, new_status)
            except AppError as e:
                item = BulkItemResult(reservation_id, "error", e.message)
            except IntegrityError as e:
                item = BulkItemResult(reservation_id, "error", ReservationService.integrity_error(e).message)
            result.results.append(item)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ReservationService.integrity_error(e)

        logger.info(
            f"Bulk {action} {context.request_id} by {context.actor}: "
            f"{result.succeeded} succeeded, {result.skipped} skipped, {result.errors} failed "
            f"of {result.target_count}"
        )
        changed = [item.id for item in result.results if item.status == "success"]
        if changed:
            self.notifier.publish(MutationEvent(
                event_type="booking.bulk_operation",
                booking_ids=changed,
                action=AUDIT_ACTIONS[action],
                actor=context.actor,
                request_id=context.request_id,
                data={"processed_count": result.processed_count, "target_count": result.target_count},
            ))
        return result

    # ===== EXPORT =====

    @staticmethod
    def export_columns(export_fields: Optional[List[str]] = None) -> List[str]:
        requested = list(export_fields) if export_fields else list(DEFAULT_EXPORT_FIELDS)
        columns = [name for name in requested if name in EXPORTABLE_FIELDS]
        if not columns:
            raise ValidationError(
                "No valid export fields specified",
                details=[{"field": "export_fields", "code": "enum",
                          "message": f"export_fields must be drawn from: {', '.join(EXPORTABLE_FIELDS)}"}],
            )
        return columns

    def export_csv(
        self,
        ids: Optional[List[Any]] = None,
        filters: Optional[Dict[str, Any]] = None,
        export_fields: Optional[List[str]] = None,
    ) -> str:
        """Render the target set as CSV text. Read-only."""
        columns = self.export_columns(export_fields)
        targets = self.resolve_targets(ids, filters)
        rows = (
            self.db.query(Reservation)
            .filter(Reservation.id.in_(targets), Reservation.not_deleted())
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
            .all()
        )

        output = io.StringIO()
        writer = csv.writer(output, delimiter=",", quotechar='"', quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
        writer.writerow(columns)
        for record in rows:
            writer.writerow([_csv_value(getattr(record, name)) for name in columns])

        logger.info(f"Exported {len(rows)} reservations ({len(columns)} columns)")
        return output.getvalue()

    @staticmethod
    def export_filename() -> str:
        return f"reservations_export_{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}.csv"
