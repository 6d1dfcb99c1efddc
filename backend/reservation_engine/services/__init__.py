# Services module

from reservation_engine.services.change_notifier import ChangeNotifier, MutationEvent, change_notifier
from reservation_engine.services.field_definition_service import FieldDefinitionService
from reservation_engine.services.normalize_service import (
    normalize_core,
    normalize_extras,
    normalize_reservation,
)
from reservation_engine.services.validation_service import (
    ValidationIssue,
    ValidationResult,
    check_data_quality,
    validate_reservation,
)
from reservation_engine.services.audit_service import AuditService, build_diff, log_action
from reservation_engine.services.reservation_service import (
    ReservationFilters,
    ReservationService,
    serialize_reservation,
)
from reservation_engine.services.bulk_operation_service import (
    BulkItemResult,
    BulkOperationService,
    BulkResult,
)
