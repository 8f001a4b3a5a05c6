"""
Typed Exception Hierarchy for the Dispatch Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rule the work-order and dispatch-guide machines enforce is reported to
the caller as a machine-readable code plus a human-readable message.  Callers
(HTTP adapters, batch jobs, tests) catch by type and forward ``code`` and
``http_status``; they never parse message strings.

Every class carries:
  1. ``code``        -- class attribute, stable and API-safe
  2. ``category``    -- one of VALIDATION, AUTH, CONFLICT, NOT_FOUND, INTERNAL
  3. ``http_status`` -- the status an HTTP adapter should answer with
  4. structured context as instance attributes (ids, fields, states)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DispatchKernelError (base)
    |
    +-- ValidationError                    (400)
    |   +-- MissingFieldError              MISSING_FIELD
    |   +-- MalformedFieldError            INVALID_FIELD
    |   +-- InvalidDateError               INVALID_DATE
    |   +-- InvalidStateError              INVALID_STATE
    |   +-- InvalidWorkerError             INVALID_WORKER
    |   +-- InvalidCourierError            INVALID_COURIER
    |   +-- InvalidHandlerError            INVALID_HANDLER
    |   +-- MissingHandlerError            MISSING_ENCARGADO
    |
    +-- AuthError
    |   +-- UnauthenticatedError           UNAUTHENTICATED          (401)
    |   +-- UnauthorizedError              UNAUTHORIZED             (403)
    |   +-- ForbiddenDateChangeError       FORBIDDEN_FECHA          (403)
    |   +-- InvalidHandlerCompanyError     INVALID_HANDLER_COMPANY  (403)
    |
    +-- ConflictError
    |   +-- DuplicateWorkOrderError        DUPLICATE                (400)
    |   +-- DuplicateGuideError            DUPLICATE                (400)
    |   +-- InvalidTransitionError         INVALID_TRANSITION       (400)
    |   +-- AlreadyDeliveredError          ALREADY_DELIVERED        (403)
    |   +-- WorkOrderNotCompletedError     OT_NOT_COMPLETED         (403)
    |   +-- WorkOrderCancelledError        OT_CANCELLED             (400)
    |
    +-- NotFoundError                      (404)
    |   +-- WorkOrderNotFoundError         NOT_FOUND
    |   +-- DispatchGuideNotFoundError     NOT_FOUND
    |   +-- SalesOrderNotFoundError        ORDER_NOT_FOUND
    |
    +-- InternalError                      (500)
        +-- DatastoreError                 DATASTORE_ERROR

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        coordinator.update_dispatch_guides(actor, patches)
    except DispatchKernelError as e:
        return json_response(e.to_dict(), status=e.http_status)

Rule violations are raised before the offending item is written.  The
transaction coordinator rolls the whole unit back, so a raised error always
means nothing was applied.
"""


class DispatchKernelError(Exception):
    """
    Base exception for all dispatch kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "DISPATCH_KERNEL_ERROR"
    category: str = "INTERNAL"
    http_status: int = 500

    def to_dict(self) -> dict:
        """Serialize to the failure shape returned to callers."""
        return {
            "success": False,
            "code": self.code,
            "category": self.category,
            "status": self.http_status,
            "message": str(self),
        }


# Validation errors


class ValidationError(DispatchKernelError):
    """Base exception for missing or malformed input."""

    code: str = "VALIDATION_ERROR"
    category: str = "VALIDATION"
    http_status: int = 400


class MissingFieldError(ValidationError):
    """A required field is absent from the request."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Missing required field: {field_name}")


class MalformedFieldError(ValidationError):
    """A field value has the wrong shape (e.g. a non-numeric id)."""

    code: str = "INVALID_FIELD"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = str(value)
        super().__init__(f"Malformed value for {field_name}: {value!r}")


class InvalidDateError(ValidationError):
    """Date is malformed or earlier than the stored date beyond tolerance."""

    code: str = "INVALID_DATE"

    def __init__(self, value: object, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid date {value!r}: {reason}")


class InvalidStateError(ValidationError):
    """State string does not map onto a known lifecycle state."""

    code: str = "INVALID_STATE"

    def __init__(self, entity: str, value: object):
        self.entity = entity
        self.value = str(value)
        super().__init__(f"Unknown {entity} state: {value!r}")


class InvalidWorkerError(ValidationError):
    """Worker does not exist or does not hold the logistics worker role."""

    code: str = "INVALID_WORKER"

    def __init__(self, worker_id: object, reason: str):
        self.worker_id = worker_id
        self.reason = reason
        super().__init__(f"Invalid worker {worker_id}: {reason}")


class InvalidCourierError(ValidationError):
    """Courier company does not exist or is not a courier account."""

    code: str = "INVALID_COURIER"

    def __init__(self, courier_id: object, reason: str):
        self.courier_id = courier_id
        self.reason = reason
        super().__init__(f"Invalid courier {courier_id}: {reason}")


class InvalidHandlerError(ValidationError):
    """Handler (individual courier employee) does not exist."""

    code: str = "INVALID_HANDLER"

    def __init__(self, handler_id: object):
        self.handler_id = handler_id
        super().__init__(f"Handler not found: {handler_id}")


class MissingHandlerError(ValidationError):
    """ASIGNADA requested on a guide that has no handler."""

    code: str = "MISSING_ENCARGADO"

    def __init__(self, guide_id: int):
        self.guide_id = guide_id
        super().__init__(
            f"Guide {guide_id} needs a handler before it can be ASIGNADA"
        )


# Authentication / authorization errors


class AuthError(DispatchKernelError):
    """Base exception for missing or insufficient actor credentials."""

    code: str = "AUTH_ERROR"
    category: str = "AUTH"
    http_status: int = 403


class UnauthenticatedError(AuthError):
    """No authenticated actor was supplied."""

    code: str = "UNAUTHENTICATED"
    http_status: int = 401

    def __init__(self):
        super().__init__("Missing or invalid actor")


class UnauthorizedError(AuthError):
    """Actor role may not perform this operation at all."""

    code: str = "UNAUTHORIZED"

    def __init__(self, role: str, entity: str):
        self.role = role
        self.entity = entity
        super().__init__(f"Role {role} may not update {entity}")


class ForbiddenDateChangeError(AuthError):
    """Caller tried to set the date alongside a state change without rights."""

    code: str = "FORBIDDEN_FECHA"

    def __init__(self, guide_id: int, role: str):
        self.guide_id = guide_id
        self.role = role
        super().__init__(
            f"Role {role} may not change the date together with the state "
            f"of guide {guide_id}"
        )


class InvalidHandlerCompanyError(AuthError):
    """Handler does not belong to a company the acting courier may assign."""

    code: str = "INVALID_HANDLER_COMPANY"

    def __init__(self, guide_id: int, handler_id: int, handler_company_id: int):
        self.guide_id = guide_id
        self.handler_id = handler_id
        self.handler_company_id = handler_company_id
        super().__init__(
            f"Handler {handler_id} does not belong to the courier company "
            f"assigned to guide {guide_id}"
        )


# Conflict errors


class ConflictError(DispatchKernelError):
    """Base exception for requests that conflict with the current state."""

    code: str = "CONFLICT"
    category: str = "CONFLICT"
    http_status: int = 400


class DuplicateWorkOrderError(ConflictError):
    """A work order already exists for the originating sales order."""

    code: str = "DUPLICATE"

    def __init__(self, sales_order_id: int, work_order_id: int | None = None):
        self.sales_order_id = sales_order_id
        self.work_order_id = work_order_id
        suffix = f" (work order {work_order_id})" if work_order_id else ""
        super().__init__(
            f"A work order already exists for sales order {sales_order_id}{suffix}"
        )


class DuplicateGuideError(ConflictError):
    """The work order already has its dispatch guide."""

    code: str = "DUPLICATE"

    def __init__(self, work_order_id: int, guide_id: int | None = None):
        self.work_order_id = work_order_id
        self.guide_id = guide_id
        suffix = f" (guide {guide_id})" if guide_id else ""
        super().__init__(
            f"Work order {work_order_id} already has a dispatch guide{suffix}"
        )


class InvalidTransitionError(ConflictError):
    """Requested state is not reachable from the current one."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: int, from_state: str, to_state: str):
        self.entity = entity
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Cannot move {entity} {entity_id} from {from_state} to {to_state}"
        )


class AlreadyDeliveredError(ConflictError):
    """Guide is ENTREGADA; state, courier and handler are frozen."""

    code: str = "ALREADY_DELIVERED"
    http_status: int = 403

    def __init__(self, guide_id: int, field_name: str):
        self.guide_id = guide_id
        self.field_name = field_name
        super().__init__(
            f"Cannot change {field_name} of delivered guide {guide_id}"
        )


class WorkOrderNotCompletedError(ConflictError):
    """Guide edits are blocked until the parent work order is COMPLETED."""

    code: str = "OT_NOT_COMPLETED"
    http_status: int = 403

    def __init__(self, guide_id: int, work_order_id: int, work_order_state: str):
        self.guide_id = guide_id
        self.work_order_id = work_order_id
        self.work_order_state = work_order_state
        super().__init__(
            f"Work order {work_order_id} is {work_order_state}; guide "
            f"{guide_id} stays in EN_PICKING until picking completes"
        )


class WorkOrderCancelledError(ConflictError):
    """Cancelled work orders get no dispatch guide."""

    code: str = "OT_CANCELLED"

    def __init__(self, work_order_id: int):
        self.work_order_id = work_order_id
        super().__init__(f"Work order {work_order_id} is cancelled")


# Not-found errors


class NotFoundError(DispatchKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    category: str = "NOT_FOUND"
    http_status: int = 404


class WorkOrderNotFoundError(NotFoundError):
    """Work order with given ID was not found."""

    def __init__(self, work_order_id: object):
        self.work_order_id = work_order_id
        super().__init__(f"Work order not found: {work_order_id}")


class DispatchGuideNotFoundError(NotFoundError):
    """Dispatch guide with given ID was not found."""

    def __init__(self, guide_id: object):
        self.guide_id = guide_id
        super().__init__(f"Dispatch guide not found: {guide_id}")


class SalesOrderNotFoundError(NotFoundError):
    """Originating sales order was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, sales_order_id: object):
        self.sales_order_id = sales_order_id
        super().__init__(f"Sales order not found: {sales_order_id}")


# Internal errors


class InternalError(DispatchKernelError):
    """Base exception for unexpected failures."""

    code: str = "INTERNAL"
    category: str = "INTERNAL"
    http_status: int = 500


class DatastoreError(InternalError):
    """The datastore failed in a way no business rule accounts for."""

    code: str = "DATASTORE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Datastore failure during {operation}: {detail}")
