"""Audit trail routes (cross-reservation views)."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from reservation_engine.core.rate_limit import get_actor_or_ip, limiter
from reservation_engine.core.responses import paginated_response, success_response
from reservation_engine.core.validators import PositiveIntId, clamp_page_size
from reservation_engine.db.session import DbSession
from reservation_engine.schemas.audits import AuditSearchRequest
from reservation_engine.services.audit_service import AuditService

router = APIRouter()


@router.get("/recent")
@limiter.limit("60/minute", key_func=get_actor_or_ip)
def recent_audits(
    request: Request,
    db: DbSession,
    hours: int = Query(24, ge=1, le=24 * 90),
    actor: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
):
    entries = AuditService(db).recent(hours=hours, actor=actor, action=action, limit=limit)
    return success_response(entries, total_count=len(entries))


@router.get("/stats")
@limiter.limit("60/minute", key_func=get_actor_or_ip)
def audit_statistics(request: Request, db: DbSession, days: int = Query(7, ge=1, le=365)):
    return success_response(AuditService(db).statistics(days=days))


@router.post("/search")
@limiter.limit("60/minute", key_func=get_actor_or_ip)
def search_audits(request: Request, db: DbSession, body: AuditSearchRequest):
    """Filter the trail by reservation, actor, action, date range and free text."""
    size = clamp_page_size(body.page_size)
    entries, total = AuditService(db).search(
        booking_ids=body.booking_ids,
        actors=body.actors,
        actions=body.actions,
        date_from=body.date_from,
        date_to=body.date_to,
        search_term=body.search_term,
        page=body.page,
        page_size=size,
    )
    return paginated_response(entries, total, body.page, size)


@router.get("/{audit_id}")
@limiter.limit("60/minute", key_func=get_actor_or_ip)
def get_audit(request: Request, db: DbSession, audit_id: PositiveIntId):
    return success_response(AuditService(db).get(audit_id))
