"""
Typed Exception Hierarchy for the Travel Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval actions arrive from web sessions and from external agents acting on
a user's behalf. Both surfaces need to map a failure onto a response without
parsing message strings, so every error:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, transport-safe)
  3. Carries structured DATA (approval id, level, status, ...)

Example - what this module enables:
    try:
        engine.act_on_approval(ref, proof, ApprovalAction.APPROVE)
    except LevelOrderViolationError as e:
        respond(400, code=e.code, blocking_level=e.blocking_level)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TravelKernelError. The four caller-facing
categories mirror the transport status an adapter should return:

    TravelKernelError (base)
    |
    +-- NotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- EntityNotFoundError
    |   +-- BailoutNotFoundError
    |   +-- UserNotFoundError
    |
    +-- ForbiddenError
    |   +-- ApproverMismatchError
    |   +-- PhoneNotOnRecordError
    |   +-- PhoneMismatchError
    |   +-- RoleNotPermittedError
    |   +-- NotEntityOwnerError
    |
    +-- BadRequestError
    |   +-- MissingIdentifierError
    |   +-- ApprovalAlreadyProcessedError
    |   +-- LevelOrderViolationError
    |   +-- ApprovalLevelExistsError
    |   +-- ReasonTooShortError
    |   +-- ParentNotAwaitingApprovalError
    |   +-- InvalidEntityStateError
    |   +-- InvalidBailoutTransitionError
    |   +-- InvalidBailoutInputError
    |   +-- InvalidClaimInputError
    |   +-- InvalidTravelRequestInputError
    |   +-- UnsupportedActionError
    |
    +-- ConflictError
    |   +-- BusinessKeyCollisionError
    |   +-- TransactionConflictError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                           | When Raised
--------------|--------------------------------|-----------------------------------
NotFound      | APPROVAL_NOT_FOUND             | id / business key matches nothing
              | ENTITY_NOT_FOUND               | travel request or claim unknown
              | BAILOUT_NOT_FOUND              | bailout id unknown
              | USER_NOT_FOUND                 | requester / actor unknown
--------------|--------------------------------|-----------------------------------
Forbidden     | APPROVER_MISMATCH              | session user is not the approver
              | PHONE_NOT_ON_RECORD            | approver has no phone number
              | PHONE_MISMATCH                 | supplied phone does not match
              | ROLE_NOT_PERMITTED             | role not in the required group
              | NOT_ENTITY_OWNER               | only the requester may submit
--------------|--------------------------------|-----------------------------------
BadRequest    | MISSING_IDENTIFIER             | neither id nor business key given
              | APPROVAL_ALREADY_PROCESSED     | approval no longer PENDING
              | LEVEL_ORDER_VIOLATION          | a lower level is not APPROVED
              | APPROVAL_LEVEL_EXISTS          | direct action on a level already in chain
              | REASON_TOO_SHORT               | reason / comment below minimum
              | PARENT_NOT_AWAITING_APPROVAL   | parent already resolved or editable
              | INVALID_ENTITY_STATE           | lifecycle transition not allowed
              | INVALID_BAILOUT_TRANSITION     | bailout not in the required status
              | INVALID_BAILOUT_INPUT          | amount / description invalid
              | INVALID_CLAIM_INPUT            | claim amount not positive
              | INVALID_TRAVEL_REQUEST_INPUT   | blank destination, dates reversed
              | UNSUPPORTED_ACTION             | unknown action verb
--------------|--------------------------------|-----------------------------------
Conflict      | BUSINESS_KEY_COLLISION         | duplicate business key on insert
              | TRANSACTION_CONFLICT           | store conflict persisted past retry
--------------|--------------------------------|-----------------------------------
Audit         | AUDIT_CHAIN_BROKEN             | hash chain validation failed
--------------|--------------------------------|-----------------------------------
Immutability  | IMMUTABILITY_VIOLATION         | audit record UPDATE / DELETE

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Caller errors (NotFound, Forbidden, BadRequest) are never retried.
2. ConflictError is the only category the service layer retries, once.
3. ImmutabilityViolationError indicates a programming error or tampering.
"""


class TravelKernelError(Exception):
    """Base exception for all travel kernel errors."""

    code: str = "TRAVEL_KERNEL_ERROR"


# Not found


class NotFoundError(TravelKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class ApprovalNotFoundError(NotFoundError):
    """No approval matches the supplied id or business key."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Approval not found: {identifier}")


class EntityNotFoundError(NotFoundError):
    """Travel request or claim not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class BailoutNotFoundError(NotFoundError):
    """Bailout not found."""

    code: str = "BAILOUT_NOT_FOUND"

    def __init__(self, bailout_id: str):
        self.bailout_id = bailout_id
        super().__init__(f"Bailout not found: {bailout_id}")


class UserNotFoundError(NotFoundError):
    """User not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Forbidden


class ForbiddenError(TravelKernelError):
    """Base exception for ownership and role mismatches."""

    code: str = "FORBIDDEN"


class ApproverMismatchError(ForbiddenError):
    """Session caller is not the approver fixed on the approval."""

    code: str = "APPROVER_MISMATCH"

    def __init__(self, approval_id: str, caller_id: str):
        self.approval_id = approval_id
        self.caller_id = caller_id
        super().__init__(
            f"User {caller_id} is not the approver for approval {approval_id}"
        )


class PhoneNotOnRecordError(ForbiddenError):
    """Approver has no phone number on record."""

    code: str = "PHONE_NOT_ON_RECORD"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(
            f"Approver for approval {approval_id} has no phone number on record"
        )


class PhoneMismatchError(ForbiddenError):
    """Supplied phone number does not match the approver's number."""

    code: str = "PHONE_MISMATCH"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(
            f"Phone number does not match the approver for approval {approval_id}"
        )


class RoleNotPermittedError(ForbiddenError):
    """Caller's role is not in the group required for the action."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, role: str, action: str, allowed_roles: tuple[str, ...]):
        self.role = role
        self.action = action
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role {role} may not {action}; allowed: {', '.join(allowed_roles)}"
        )


class NotEntityOwnerError(ForbiddenError):
    """Only the requester may perform this action on the entity."""

    code: str = "NOT_ENTITY_OWNER"

    def __init__(self, entity_type: str, entity_id: str, caller_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.caller_id = caller_id
        super().__init__(
            f"User {caller_id} does not own {entity_type} {entity_id}"
        )


# Bad request


class BadRequestError(TravelKernelError):
    """Base exception for invalid transitions and invalid input."""

    code: str = "BAD_REQUEST"


class MissingIdentifierError(BadRequestError):
    """Neither an approval id nor a business key was supplied."""

    code: str = "MISSING_IDENTIFIER"

    def __init__(self):
        super().__init__("Either an approval id or an approval number is required")


class ApprovalAlreadyProcessedError(BadRequestError):
    """The approval is no longer PENDING."""

    code: str = "APPROVAL_ALREADY_PROCESSED"

    def __init__(self, approval_id: str, current_status: str):
        self.approval_id = approval_id
        self.current_status = current_status
        super().__init__(
            f"Approval {approval_id} has already been processed "
            f"(status: {current_status})"
        )


class LevelOrderViolationError(BadRequestError):
    """A lower level of the same chain is not yet APPROVED."""

    code: str = "LEVEL_ORDER_VIOLATION"

    def __init__(self, approval_id: str, level: str, blocking_level: str):
        self.approval_id = approval_id
        self.level = level
        self.blocking_level = blocking_level
        super().__init__(
            f"Previous level approvals must be completed first: "
            f"{blocking_level} is not approved (acting on {level})"
        )


class ApprovalLevelExistsError(BadRequestError):
    """The entity already has an approval at this level."""

    code: str = "APPROVAL_LEVEL_EXISTS"

    def __init__(self, entity_id: str, level: str, approval_number: str):
        self.entity_id = entity_id
        self.level = level
        self.approval_number = approval_number
        super().__init__(
            f"{entity_id} already has {level} approval {approval_number}"
        )


class ReasonTooShortError(BadRequestError):
    """Required reason or comment is missing or below the minimum length."""

    code: str = "REASON_TOO_SHORT"

    def __init__(self, field_name: str, min_length: int, actual_length: int):
        self.field_name = field_name
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"{field_name} must be at least {min_length} characters "
            f"(got {actual_length})"
        )


class ParentNotAwaitingApprovalError(BadRequestError):
    """The parent entity is resolved or editable; no approval may act."""

    code: str = "PARENT_NOT_AWAITING_APPROVAL"

    def __init__(self, entity_type: str, entity_id: str, status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(
            f"{entity_type} {entity_id} is not awaiting approval (status: {status})"
        )


class InvalidEntityStateError(BadRequestError):
    """Lifecycle operation is not allowed from the entity's current status."""

    code: str = "INVALID_ENTITY_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        status: str,
        operation: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id} in status {status}"
        )


class InvalidBailoutTransitionError(BadRequestError):
    """Bailout is not in the status the action requires."""

    code: str = "INVALID_BAILOUT_TRANSITION"

    def __init__(self, bailout_id: str, current_status: str, action: str):
        self.bailout_id = bailout_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} bailout {bailout_id} in status {current_status}"
        )


class InvalidBailoutInputError(BadRequestError):
    """Bailout creation input is invalid."""

    code: str = "INVALID_BAILOUT_INPUT"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid bailout {field_name}: {reason}")


class InvalidClaimInputError(BadRequestError):
    """Claim creation input is invalid."""

    code: str = "INVALID_CLAIM_INPUT"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid claim {field_name}: {reason}")


class InvalidTravelRequestInputError(BadRequestError):
    """Travel request input is invalid."""

    code: str = "INVALID_TRAVEL_REQUEST_INPUT"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid travel request {field_name}: {reason}")


class UnsupportedActionError(BadRequestError):
    """Action verb is not recognised."""

    code: str = "UNSUPPORTED_ACTION"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Unsupported action: {action}")


# Conflict


class ConflictError(TravelKernelError):
    """Base exception for store-level conflicts."""

    code: str = "CONFLICT"


class BusinessKeyCollisionError(ConflictError):
    """A generated business key already exists."""

    code: str = "BUSINESS_KEY_COLLISION"

    def __init__(self, business_key: str):
        self.business_key = business_key
        super().__init__(f"Business key already exists: {business_key}")


class TransactionConflictError(ConflictError):
    """Store conflict persisted after the transparent retry."""

    code: str = "TRANSACTION_CONFLICT"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Operation {operation} conflicted with a concurrent transaction "
            f"after {attempts} attempt(s)"
        )


# Audit


class AuditError(TravelKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Recomputed hash or predecessor link does not match the stored value."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, record_id: str, expected_hash: str, actual_hash: str):
        self.record_id = record_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at record {record_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability


class ImmutabilityError(TravelKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
