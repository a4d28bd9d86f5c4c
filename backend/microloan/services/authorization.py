"""Capability checks for loan applications.

``authorize`` is a pure function of (actor, application, action); it keeps no
state and never touches the database.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from microloan.models.loan import ApplicationStatus, LoanApplication
from microloan.services.errors import ForbiddenError, InvalidStateError


class UserRole(str, enum.Enum):
    BORROWER = "borrower"
    MANAGER = "manager"
    ADMIN = "admin"


PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER})


class Action(str, enum.Enum):
    READ = "read"
    REPAY = "repay"
    PAY_ONLINE = "pay_online"
    CREATE = "create"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as carried by the access token."""

    user_id: int
    role: UserRole
    email: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


def _is_owner(actor: Actor, application: Optional[LoanApplication]) -> bool:
    return application is not None and application.user_id == actor.user_id


def authorize(actor: Actor, application: Optional[LoanApplication], action: Action) -> Decision:
    if action in (Action.READ, Action.REPAY):
        allowed = _is_owner(actor, application) or actor.is_privileged
    elif action == Action.PAY_ONLINE:
        allowed = _is_owner(actor, application)
    elif action == Action.CREATE:
        allowed = actor.role == UserRole.BORROWER
    elif action in (Action.APPROVE, Action.REJECT):
        allowed = actor.is_privileged
    elif action == Action.CANCEL:
        allowed = (
            _is_owner(actor, application)
            and application.status == ApplicationStatus.PENDING
        )
    else:
        allowed = False
    return Decision.ALLOW if allowed else Decision.DENY


def ensure_authorized(
    actor: Actor, application: Optional[LoanApplication], action: Action
) -> None:
    """Raise unless *actor* may perform *action*.

    An owner trying to cancel a non-pending application gets InvalidStateError
    rather than ForbiddenError, since the capability is there but the status
    forbids it.
    """
    if authorize(actor, application, action) == Decision.ALLOW:
        return
    if action == Action.CANCEL and _is_owner(actor, application):
        raise InvalidStateError("Can only cancel pending applications")
    raise ForbiddenError("Not authorized")
