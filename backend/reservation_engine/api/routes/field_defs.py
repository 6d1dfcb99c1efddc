"""Field definition (extras catalog) routes."""

from collections import OrderedDict
from typing import Optional

from fastapi import APIRouter, Query, Request

from reservation_engine.core.rate_limit import limiter
from reservation_engine.core.responses import success_response
from reservation_engine.core.validators import FieldKey
from reservation_engine.db.session import DbSession
from reservation_engine.schemas.field_defs import (
    FieldDefinitionCreate,
    FieldDefinitionDelete,
    FieldDefinitionImport,
    FieldDefinitionResponse,
    FieldDefinitionUpdate,
)
from reservation_engine.services.field_definition_service import FieldDefinitionService

router = APIRouter()


def _dump(definition) -> dict:
    return FieldDefinitionResponse.model_validate(definition).model_dump(mode="json")


@router.get("")
@limiter.limit("60/minute")
def list_field_definitions(
    request: Request,
    db: DbSession,
    active_only: bool = Query(True),
    category: Optional[str] = Query(None, max_length=100),
):
    """List definitions, also grouped by category for form rendering."""
    definitions = [_dump(d) for d in FieldDefinitionService(db).list_definitions(active_only, category)]
    grouped: "OrderedDict[str, list]" = OrderedDict()
    for definition in definitions:
        grouped.setdefault(definition["category"], []).append(definition)
    return success_response(definitions, grouped=grouped, total_count=len(definitions))


@router.get("/categories")
@limiter.limit("60/minute")
def list_categories(request: Request, db: DbSession):
    return success_response(FieldDefinitionService(db).categories())


@router.post("", status_code=201)
@limiter.limit("30/minute")
def create_field_definition(request: Request, db: DbSession, body: FieldDefinitionCreate):
    definition = FieldDefinitionService(db).create(body.model_dump())
    return success_response(_dump(definition), message="Field definition created")


@router.post("/bulk-import")
@limiter.limit("10/minute")
def bulk_import_field_definitions(request: Request, db: DbSession, body: FieldDefinitionImport):
    """Upsert many definitions by key; failures are reported per item."""
    result = FieldDefinitionService(db).bulk_import(body.fields)
    summary = result["summary"]
    return success_response(
        {
            "imported": [_dump(d) for d in result["imported"]],
            "errors": result["errors"],
            "summary": summary,
        },
        message=f"Imported {summary['created'] + summary['updated']} of {summary['total']} field definitions",
    )


@router.get("/{key}")
@limiter.limit("60/minute")
def get_field_definition(request: Request, db: DbSession, key: FieldKey):
    return success_response(_dump(FieldDefinitionService(db).get(key)))


@router.patch("/{key}")
@limiter.limit("30/minute")
def update_field_definition(request: Request, db: DbSession, key: FieldKey, body: FieldDefinitionUpdate):
    definition = FieldDefinitionService(db).update(key, body.model_dump(exclude_unset=True))
    return success_response(_dump(definition), message="Field definition updated")


@router.delete("/{key}")
@limiter.limit("30/minute")
def delete_field_definition(
    request: Request,
    db: DbSession,
    key: FieldKey,
    hard_delete: bool = Query(False),
    body: Optional[FieldDefinitionDelete] = None,
):
    """Deactivate a definition, or remove it outright with ``hard_delete``."""
    hard = hard_delete or bool(body and body.hard_delete)
    result = FieldDefinitionService(db).deactivate(key, hard_delete=hard)
    message = "Field definition deleted" if result["deleted"] else "Field definition deactivated"
    return success_response(result, message=message)
