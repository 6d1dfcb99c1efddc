"""Field definition registry.

Administrators describe extras keys here. Reservation writes read the active
set fresh from the database on every call; nothing is cached.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reservation_engine.core.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    ValidationError,
    translate_integrity_error,
)
from reservation_engine.models.field_definition import FieldDefinition, FIELD_TYPES
from reservation_engine.models.reservation import Reservation

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

EDITABLE_ATTRIBUTES = (
    "label", "type", "required", "pattern", "options", "default_value",
    "placeholder", "help_text", "category", "sort_order", "is_active",
)
NON_NULLABLE_ATTRIBUTES = {"type", "required", "sort_order", "is_active"}


def _issue(field: str, code: str, message: str) -> Dict[str, Any]:
    return {"field": field, "code": code, "message": message}


class FieldDefinitionService:
    """CRUD and bulk import for the extras catalog."""

    def __init__(self, db: Session):
        self.db = db

    # ===== READ =====

    def list_definitions(self, active_only: bool = True, category: Optional[str] = None) -> List[FieldDefinition]:
        query = self.db.query(FieldDefinition)
        if active_only:
            query = query.filter(FieldDefinition.is_active.is_(True))
        if category:
            query = query.filter(FieldDefinition.category == category)
        return query.order_by(
            FieldDefinition.category, FieldDefinition.sort_order, FieldDefinition.label
        ).all()

    def active_definitions(self) -> List[FieldDefinition]:
        """The live catalog used to normalize and validate extras."""
        return self.list_definitions(active_only=True)

    def get(self, key: str) -> FieldDefinition:
        definition = self.db.query(FieldDefinition).filter(FieldDefinition.key == key).first()
        if not definition:
            raise NotFoundError("Field definition", key)
        return definition

    def categories(self) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                FieldDefinition.category,
                func.count(FieldDefinition.id),
                func.sum(case((FieldDefinition.is_active.is_(True), 1), else_=0)),
            )
            .group_by(FieldDefinition.category)
            .order_by(FieldDefinition.category)
            .all()
        )
        return [
            {"category": category, "field_count": int(total or 0), "active_count": int(active or 0)}
            for category, total, active in rows
        ]

    # ===== VALIDATION =====

    def _check_attributes(self, data: Dict[str, Any], creating: bool) -> List[Dict[str, Any]]:
        errors: List[Dict[str, Any]] = []

        if creating:
            key = data.get("key")
            if not isinstance(key, str) or not key:
                errors.append(_issue("key", "required", "key is required"))
            elif len(key) > 100:
                errors.append(_issue("key", "length", "key must be at most 100 characters"))
            elif not KEY_PATTERN.match(key):
                errors.append(_issue(
                    "key", "pattern",
                    "key must start with a letter and contain only letters, digits and underscores",
                ))
            if not data.get("label") or not str(data.get("label")).strip():
                errors.append(_issue("label", "required", "label is required"))

        if "label" in data and not creating and not (data["label"] and str(data["label"]).strip()):
            errors.append(_issue("label", "required", "label cannot be empty"))

        if "type" in data or creating:
            field_type = data.get("type") or "string"
            if field_type not in FIELD_TYPES:
                errors.append(_issue(
                    "type", "enum", f"type must be one of: {', '.join(FIELD_TYPES)}",
                ))

        pattern = data.get("pattern")
        if pattern:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(_issue("pattern", "pattern", f"pattern is not a valid regular expression: {e}"))

        options = data.get("options")
        if options is not None and not isinstance(options, list):
            errors.append(_issue("options", "type", "options must be a list"))

        field_type = data.get("type")
        if field_type in ("select", "multiselect") and creating and not options:
            errors.append(_issue("options", "required", f"options are required for {field_type} fields"))

        return errors

    # ===== WRITE =====

    def _build(self, data: Dict[str, Any]) -> FieldDefinition:
        return FieldDefinition(
            key=data["key"],
            label=str(data["label"]).strip(),
            type=data.get("type") or "string",
            required=bool(data.get("required", False)),
            pattern=data.get("pattern") or None,
            options=data.get("options"),
            default_value=data.get("default_value"),
            placeholder=data.get("placeholder"),
            help_text=data.get("help_text"),
            category=data.get("category") or "general",
            sort_order=int(data.get("sort_order") or 0),
            is_active=bool(data.get("is_active", True)),
        )

    def _insert(self, data: Dict[str, Any]) -> FieldDefinition:
        errors = self._check_attributes(data, creating=True)
        if errors:
            raise ValidationError("Invalid field definition", details=errors)

        existing = self.db.query(FieldDefinition.id).filter(FieldDefinition.key == data["key"]).first()
        if existing:
            raise ConflictError(
                f"Field definition '{data['key']}' already exists",
                error_code="DUPLICATE_FIELD_KEY",
                details={"key": data["key"]},
            )

        definition = self._build(data)
        self.db.add(definition)
        self.db.flush()
        return definition

    def _apply(self, definition: FieldDefinition, changes: Dict[str, Any]) -> FieldDefinition:
        if "key" in changes and changes["key"] != definition.key:
            raise ValidationError(
                "Field key cannot be changed",
                details=[_issue("key", "format", "key is immutable once created")],
            )
        changes = {k: v for k, v in changes.items() if k in EDITABLE_ATTRIBUTES}
        errors = self._check_attributes(changes, creating=False)
        if errors:
            raise ValidationError("Invalid field definition", details=errors)

        for name, value in changes.items():
            if value is None and name in NON_NULLABLE_ATTRIBUTES:
                continue
            if name == "label":
                value = str(value).strip()
            elif name == "category":
                value = value or "general"
            elif name == "pattern":
                value = value or None
            setattr(definition, name, value)
        self.db.flush()
        return definition

    def create(self, data: Dict[str, Any]) -> FieldDefinition:
        try:
            definition = self._insert(data)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise translate_integrity_error(e, "field definition")
        except AppError:
            self.db.rollback()
            raise
        self.db.refresh(definition)
        logger.info(f"Field definition created: {definition.key} ({definition.type})")
        return definition

    def update(self, key: str, changes: Dict[str, Any]) -> FieldDefinition:
        definition = self.get(key)
        try:
            self._apply(definition, changes)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        self.db.refresh(definition)
        logger.info(f"Field definition updated: {key} ({', '.join(sorted(changes)) or 'no changes'})")
        return definition

    def _values_in_use(self, key: str) -> int:
        return (
            self.db.query(func.count(Reservation.id))
            .filter(Reservation.extras[key].as_string().isnot(None))
            .scalar()
            or 0
        )

    def deactivate(self, key: str, hard_delete: bool = False) -> Dict[str, Any]:
        """Soft-disable a definition, or remove it when no record holds a value."""
        definition = self.get(key)

        if hard_delete:
            in_use = self._values_in_use(key)
            if in_use:
                raise ConflictError(
                    f"Field '{key}' still has values on {in_use} reservation(s)",
                    error_code="FIELD_IN_USE",
                    details={"key": key, "reservation_count": in_use},
                )
            self.db.delete(definition)
            self.db.commit()
            logger.info(f"Field definition deleted: {key}")
            return {"key": key, "deleted": True, "is_active": False}

        definition.is_active = False
        self.db.commit()
        logger.info(f"Field definition deactivated: {key}")
        return {"key": key, "deleted": False, "is_active": False}

    def bulk_import(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Upsert definitions by key; a bad item never aborts its siblings."""
        imported: List[FieldDefinition] = []
        errors: List[Dict[str, Any]] = []
        created = updated = 0

        for index, item in enumerate(items):
            key = item.get("key") if isinstance(item, dict) else None
            if not isinstance(item, dict):
                errors.append({"index": index, "key": None, "error": "Item must be an object"})
                continue
            try:
                with self.db.begin_nested():
                    existing = None
                    if isinstance(key, str):
                        existing = self.db.query(FieldDefinition).filter(FieldDefinition.key == key).first()
                    if existing:
                        imported.append(self._apply(existing, item))
                        updated += 1
                    else:
                        imported.append(self._insert(item))
                        created += 1
            except AppError as e:
                errors.append({"index": index, "key": key, "error": e.message, "details": e.details})
            except IntegrityError as e:
                errors.append({"index": index, "key": key, "error": translate_integrity_error(e).message})

        self.db.commit()
        logger.info(f"Field definition import: {created} created, {updated} updated, {len(errors)} failed")
        return {
            "imported": imported,
            "errors": errors,
            "summary": {
                "total": len(items),
                "created": created,
                "updated": updated,
                "failed": len(errors),
            },
        }
