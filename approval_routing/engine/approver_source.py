"""
Approver Sources
Where the approver of a level comes from, and how it resolves to identities.

A level's approver is one of:

    UserSource(user_ids)   explicit users (matrix users, profile users, mapped user)
    RoleSource(role_ids)   custom roles resolved against the company directory
    Unresolved(reason)     nothing configured

``resolve_source`` turns a source into ``Resolved``, ``Skip`` or ``Fail``.
Directory reads go through a ``ResolutionContext`` so the function itself
performs no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Tuple, Union

from approval_routing.models.approval_matrix import ApprovalType


@dataclass(frozen=True)
class UserSource:
    user_ids: Tuple[int, ...]


@dataclass(frozen=True)
class RoleSource:
    role_ids: Tuple[int, ...]


@dataclass(frozen=True)
class Unresolved:
    reason: str = "no approver configured"


ApproverSource = Union[UserSource, RoleSource, Unresolved]


@dataclass(frozen=True)
class Identity:
    """A concrete approver with the display label snapshotted for the chain"""
    user_id: int
    role_label: str
    role_id: Optional[int] = None


@dataclass(frozen=True)
class Resolved:
    identities: Tuple[Identity, ...]


@dataclass(frozen=True)
class Skip:
    reason: str


@dataclass(frozen=True)
class Fail:
    reason: str


Resolution = Union[Resolved, Skip, Fail]


@dataclass
class ResolutionContext:
    """
    Directory access for one chain build.

    Args:
        find_users: ids -> active identities of the company, in the given order
        find_role_holder: (role_id, excluded ids) -> first active holder, or None
        placed: user ids already in the chain (the submitting employee included)
    """
    find_users: Callable[[Tuple[int, ...]], List[Identity]]
    find_role_holder: Callable[[int, Set[int]], Optional[Identity]]
    placed: Set[int] = field(default_factory=set)

    def place(self, identities) -> None:
        for identity in identities:
            self.placed.add(identity.user_id)


def user_source(user_ids) -> ApproverSource:
    """UserSource for non-empty ids, Unresolved otherwise"""
    ids = tuple(int(user_id) for user_id in user_ids or [] if user_id is not None)
    return UserSource(ids) if ids else Unresolved("no approver users configured")


def role_source(role_ids) -> ApproverSource:
    """RoleSource for non-empty ids, Unresolved otherwise"""
    ids = tuple(int(role_id) for role_id in role_ids or [] if role_id is not None)
    return RoleSource(ids) if ids else Unresolved("no approver roles configured")


def level_source(user_ids, role_ids) -> ApproverSource:
    """Specific users take precedence over roles when present"""
    source = user_source(user_ids)
    if isinstance(source, UserSource):
        return source
    return role_source(role_ids)


def resolve_source(
    source: ApproverSource,
    mode: ApprovalType,
    skip_allowed: bool,
    context: ResolutionContext,
    role_label: Optional[str] = None
) -> Resolution:
    """
    Resolve an approver source to concrete identities

    Sequential levels resolve to exactly one identity; parallel levels resolve
    to every explicit user, or to one holder per role. Identities already
    placed in the chain are never reused.

    Args:
        source: Approver source of the level
        mode: Evaluation mode of the level
        skip_allowed: Whether an empty result skips the level instead of failing
        context: Directory access and already-placed identities
        role_label: Fixed display label overriding the directory's

    Returns:
        Resolved, Skip or Fail
    """
    identities: List[Identity] = []

    if isinstance(source, UserSource):
        for identity in context.find_users(source.user_ids):
            if identity.user_id in context.placed:
                continue
            identities.append(identity)
            if mode == ApprovalType.SEQUENTIAL:
                break

    elif isinstance(source, RoleSource):
        excluded = set(context.placed)
        for role_id in source.role_ids:
            identity = context.find_role_holder(role_id, excluded)
            if identity is None:
                continue
            identities.append(identity)
            excluded.add(identity.user_id)
            if mode == ApprovalType.SEQUENTIAL:
                break

    if not identities:
        reason = source.reason if isinstance(source, Unresolved) else "no active approver found"
        return Skip(reason) if skip_allowed else Fail(reason)

    if role_label:
        identities = [Identity(i.user_id, role_label, i.role_id) for i in identities]

    context.place(identities)
    return Resolved(tuple(identities))
