"""Reservation (booking) routes: CRUD, lifecycle, bulk operations and history."""

from datetime import datetime
from typing import Any, Dict, Optional

from dateutil import parser as date_parser
from fastapi import APIRouter, Body, Header, Query, Request
from fastapi.responses import StreamingResponse

from reservation_engine.core.errors import ValidationError
from reservation_engine.core.rate_limit import get_actor_or_ip, limiter
from reservation_engine.core.responses import paginated_response, success_response
from reservation_engine.core.validators import ActorContext, PageParam, PositiveIntId, clamp_page_size
from reservation_engine.db.session import DbSession
from reservation_engine.schemas.bulk import BulkRequest
from reservation_engine.schemas.field_defs import FieldDefinitionResponse
from reservation_engine.schemas.reservations import CancelRequest, DeleteRequest, RestoreRequest, StatusUpdate
from reservation_engine.services.audit_service import AuditService, serialize_audit
from reservation_engine.services.bulk_operation_service import BulkOperationService
from reservation_engine.services.reservation_service import (
    ReservationFilters,
    ReservationService,
    serialize_reservation,
)

router = APIRouter()


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        raise ValidationError(
            "Invalid If-Unmodified-Since header",
            details=[{"field": "If-Unmodified-Since", "code": "format", "message": "must be an HTTP date"}],
        )


def _lock_version(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        version = int(value)
    except (TypeError, ValueError):
        version = 0
    if version < 1 or isinstance(value, bool):
        raise ValidationError(
            "Invalid _lock_version",
            details=[{"field": "_lock_version", "code": "type", "message": "must be a positive integer"}],
        )
    return version


# ===== COLLECTION =====

@router.get("")
@limiter.limit("60/minute")
def list_bookings(
    request: Request,
    db: DbSession,
    page: PageParam = 1,
    page_size: Optional[int] = Query(None, ge=1),
    q: Optional[str] = Query(None, max_length=200),
    status: Optional[str] = None,
    review: Optional[str] = None,
    channel: Optional[str] = None,
    platform: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    sort: Optional[str] = None,
    order: Optional[str] = None,
):
    """List live reservations with search, filters, sorting and pagination."""
    size = clamp_page_size(page_size)
    filters = ReservationFilters.from_mapping({
        "q": q, "status": status, "review": review, "channel": channel,
        "platform": platform, "date_from": date_from, "date_to": date_to,
    })
    rows, total = ReservationService(db).list(filters, page=page, page_size=size, sort=sort, order=order)
    return paginated_response(
        [serialize_reservation(row) for row in rows],
        total,
        page,
        size,
        filters=filters.as_dict(),
    )


@router.get("/stats")
@limiter.limit("60/minute")
def booking_statistics(request: Request, db: DbSession):
    return success_response(ReservationService(db).statistics())


@router.post("", status_code=201)
@limiter.limit("30/minute")
def create_booking(request: Request, db: DbSession, ctx: ActorContext, payload: Dict[str, Any] = Body(...)):
    """Create a reservation from structured input (``_raw_text`` optional)."""
    record = ReservationService(db).create(payload, ctx)
    return success_response(serialize_reservation(record), message="Reservation created")


@router.post("/bulk")
@limiter.limit("10/minute", key_func=get_actor_or_ip)
def bulk_operation(request: Request, db: DbSession, ctx: ActorContext, body: BulkRequest):
    """Cancel, re-status, delete or export many reservations at once."""
    service = BulkOperationService(db)

    if body.action == "export":
        content = service.export_csv(body.ids, body.filters, body.export_fields)
        return StreamingResponse(
            iter([content]),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{service.export_filename()}"'},
        )

    result = service.run(
        body.action,
        ids=body.ids,
        filters=body.filters,
        reason=body.reason,
        new_status=body.new_status,
        context=ctx,
    )
    return success_response(result.to_dict(), message=f"Bulk {body.action} completed")


# ===== SINGLE RECORD =====

@router.get("/{reservation_id}")
@limiter.limit("60/minute")
def get_booking(request: Request, db: DbSession, reservation_id: PositiveIntId):
    detail = ReservationService(db).get_detail(reservation_id)
    detail["field_definitions"] = [
        FieldDefinitionResponse.model_validate(definition).model_dump(mode="json")
        for definition in detail["field_definitions"]
    ]
    return success_response(detail)


@router.patch("/{reservation_id}")
@limiter.limit("30/minute")
def update_booking(
    request: Request,
    db: DbSession,
    ctx: ActorContext,
    reservation_id: PositiveIntId,
    payload: Dict[str, Any] = Body(...),
    if_unmodified_since: Optional[str] = Header(None),
):
    """Partial update guarded by ``If-Unmodified-Since`` and/or ``_lock_version``."""
    changes = dict(payload)
    expected_version = _lock_version(changes.pop("_lock_version", None))
    reason = changes.pop("_reason", None)

    record, diff = ReservationService(db).update(
        reservation_id,
        changes,
        context=ctx,
        expected_version=expected_version,
        if_unmodified_since=_parse_http_date(if_unmodified_since),
        reason=reason,
    )
    return success_response(
        serialize_reservation(record),
        message="Reservation updated",
        changes=diff,
        lock_version=record.lock_version,
    )


@router.patch("/{reservation_id}/status")
@limiter.limit("30/minute")
def update_booking_status(
    request: Request, db: DbSession, ctx: ActorContext, reservation_id: PositiveIntId, body: StatusUpdate,
):
    record, diff = ReservationService(db).update_status(
        reservation_id,
        payment_status=body.payment_status,
        review_status=body.review_status,
        context=ctx,
        expected_version=body.lock_version,
        reason=body.reason,
    )
    return success_response(serialize_reservation(record), message="Status updated", changes=diff)


@router.post("/{reservation_id}/cancel")
@limiter.limit("30/minute")
def cancel_booking(
    request: Request,
    db: DbSession,
    ctx: ActorContext,
    reservation_id: PositiveIntId,
    body: Optional[CancelRequest] = None,
):
    reason = body.reason if body else None
    record = ReservationService(db).cancel(reservation_id, reason=reason, context=ctx)
    return success_response(serialize_reservation(record), message="Reservation cancelled")


@router.delete("/{reservation_id}")
@limiter.limit("30/minute")
def delete_booking(
    request: Request,
    db: DbSession,
    ctx: ActorContext,
    reservation_id: PositiveIntId,
    body: Optional[DeleteRequest] = None,
):
    """Soft delete by default; ``hard_delete`` needs ALLOW_HARD_DELETE on the server."""
    body = body or DeleteRequest()
    service = ReservationService(db)
    if body.hard_delete:
        snapshot = service.hard_delete(reservation_id, reason=body.reason, context=ctx)
        return success_response(snapshot, message="Reservation permanently deleted")
    record = service.soft_delete(reservation_id, reason=body.reason, context=ctx)
    return success_response(serialize_reservation(record), message="Reservation deleted")


@router.get("/{reservation_id}/restore-eligibility")
@limiter.limit("60/minute")
def restore_eligibility(request: Request, db: DbSession, reservation_id: PositiveIntId):
    return success_response(ReservationService(db).restore_eligibility(reservation_id))


@router.post("/{reservation_id}/restore")
@limiter.limit("30/minute")
def restore_booking(
    request: Request,
    db: DbSession,
    ctx: ActorContext,
    reservation_id: PositiveIntId,
    body: Optional[RestoreRequest] = None,
):
    body = body or RestoreRequest()
    record = ReservationService(db).restore(
        reservation_id, new_status=body.new_status, reason=body.reason, context=ctx,
    )
    return success_response(serialize_reservation(record), message="Reservation restored")


@router.get("/{reservation_id}/audits")
@limiter.limit("60/minute")
def booking_audits(
    request: Request,
    db: DbSession,
    reservation_id: PositiveIntId,
    page: PageParam = 1,
    page_size: Optional[int] = Query(None, ge=1),
    action: Optional[str] = None,
):
    """Audit history of one reservation, newest first. Works for deleted rows too."""
    size = clamp_page_size(page_size)
    rows, total = AuditService(db).query(reservation_id, page=page, page_size=size, action=action)
    return paginated_response([serialize_audit(row) for row in rows], total, page, size)
