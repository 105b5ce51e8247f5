"""
Side Effect Dispatch
Notifications, audit entries and settlement requests emitted after a commit
"""

from dataclasses import dataclass, field
from enum import Enum
from sqlalchemy.orm import Session
from typing import Any, Callable, Dict, List, Optional

from approval_routing.exceptions import SideEffectDispatchError
from approval_routing.services.audit_service import audit_service
from approval_routing.services.notification_service import notification_service
from approval_routing.services.settlement_service import settlement_service
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


class SideEffectKind(str, Enum):
    NOTIFICATION = "notification"
    AUDIT = "audit"
    SETTLEMENT = "settlement"


@dataclass
class SideEffectRequest:
    """
    Request for work outside the decision transaction

    ``event`` names what happened (e.g. "approval_required", "report_approved");
    ``payload`` carries the ids the handler needs.
    """
    kind: SideEffectKind
    event: str
    report_id: Optional[int] = None
    user_ids: List[int] = field(default_factory=list)
    actor_id: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)


SideEffectHandler = Callable[[Session, SideEffectRequest], None]


class SideEffectDispatcher:
    """
    Dispatches side effect requests to registered handlers

    Runs only after the approval state is committed. A failing handler has its
    own writes rolled back and is logged; it never undoes the decision and never
    stops the remaining requests.
    """

    def __init__(self):
        self.handlers: Dict[SideEffectKind, List[SideEffectHandler]] = {}

    def register(self, kind: SideEffectKind, handler: SideEffectHandler) -> None:
        self.handlers.setdefault(kind, []).append(handler)

    def dispatch(self, db: Session, requests: List[SideEffectRequest]) -> List[SideEffectDispatchError]:
        """
        Dispatch requests in order

        Args:
            db: Database session (the decision is already committed)
            requests: Requests collected during the decision

        Returns:
            List of failures, empty when every handler succeeded
        """
        failures: List[SideEffectDispatchError] = []

        for request in requests:
            handlers = self.handlers.get(request.kind, [])
            if not handlers:
                logger.debug(f"No handler registered for {request.kind.value}:{request.event}")
                continue

            for handler in handlers:
                try:
                    handler(db, request)
                    db.commit()
                except Exception as e:
                    db.rollback()
                    error = SideEffectDispatchError(f"{request.kind.value}:{request.event}", str(e))
                    logger.error(f"{error.message} (report {request.report_id})")
                    failures.append(error)

        return failures


def register_default_handlers(dispatcher: SideEffectDispatcher) -> SideEffectDispatcher:
    """Wire the notification, audit and settlement services into a dispatcher"""
    dispatcher.register(SideEffectKind.NOTIFICATION, notification_service.handle)
    dispatcher.register(SideEffectKind.AUDIT, audit_service.handle)
    dispatcher.register(SideEffectKind.SETTLEMENT, settlement_service.handle)
    return dispatcher


# Create singleton instance
side_effect_dispatcher = register_default_handlers(SideEffectDispatcher())
