"""
Approval Routing Exceptions

Error taxonomy for chain resolution and decision processing.

    Error                        | Code                        | Propagation
    -----------------------------|-----------------------------|---------------------------
    NoApproverResolvedError      | NO_APPROVER_RESOLVED        | fatal to submission
    UnauthorizedDecisionError    | UNAUTHORIZED_DECISION       | fatal, never retried
    ValidationError              | VALIDATION_ERROR            | fatal, caller corrects input
    ConcurrentModificationError  | CONCURRENT_MODIFICATION     | retried once, then surfaced
    RuleEvaluationError          | RULE_EVALUATION_FAILED      | logged, rule skipped
    SideEffectDispatchError      | SIDE_EFFECT_DISPATCH_FAILED | logged, decision stays committed
    ResourceNotFoundError        | RESOURCE_NOT_FOUND          | fatal
    ConfigurationError           | CONFIGURATION_ERROR         | fatal to the admin operation
"""

from typing import Optional


class ApprovalRoutingError(Exception):
    """Base exception for all approval routing errors"""

    code: str = "APPROVAL_ROUTING_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NoApproverResolvedError(ApprovalRoutingError):
    """Chain build produced no usable approver and no fallback applies"""

    code: str = "NO_APPROVER_RESOLVED"
    status_code: int = 422

    def __init__(self, message: str, level_number: Optional[int] = None):
        self.level_number = level_number
        super().__init__(message)


class UnauthorizedDecisionError(ApprovalRoutingError):
    """Actor may not decide on this report right now"""

    code: str = "UNAUTHORIZED_DECISION"
    status_code: int = 403

    def __init__(self, actor_id: int, report_id: int, reason: str):
        self.actor_id = actor_id
        self.report_id = report_id
        self.reason = reason
        super().__init__(f"User {actor_id} cannot decide on report {report_id}: {reason}")


class ValidationError(ApprovalRoutingError):
    """Request is structurally invalid (e.g. request_changes without a comment)"""

    code: str = "VALIDATION_ERROR"
    status_code: int = 400


class ConcurrentModificationError(ApprovalRoutingError):
    """Approval instance or report was modified by another transaction"""

    code: str = "CONCURRENT_MODIFICATION"
    status_code: int = 409

    def __init__(self, report_id: int, attempts: int):
        self.report_id = report_id
        self.attempts = attempts
        super().__init__(
            f"Approval state of report {report_id} changed concurrently; "
            f"gave up after {attempts} attempt(s)"
        )


class RuleEvaluationError(ApprovalRoutingError):
    """A budget rule could not be evaluated"""

    code: str = "RULE_EVALUATION_FAILED"

    def __init__(self, rule_id: int, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Approval rule {rule_id} could not be evaluated: {reason}")


class SideEffectDispatchError(ApprovalRoutingError):
    """A notification, audit or settlement request failed after commit"""

    code: str = "SIDE_EFFECT_DISPATCH_FAILED"
    status_code: int = 500

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Side effect '{kind}' failed: {reason}")


class ResourceNotFoundError(ApprovalRoutingError):
    """Referenced entity does not exist"""

    code: str = "RESOURCE_NOT_FOUND"
    status_code: int = 404

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConfigurationError(ApprovalRoutingError):
    """Approval configuration (matrix, profile, mapping, rule) is invalid"""

    code: str = "CONFIGURATION_ERROR"
    status_code: int = 400
