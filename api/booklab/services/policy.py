"""Repository access policy.

``authorize`` is a pure decision over the principal and the already-loaded
owner/repository; it never touches storage. Slug resolution (and therefore
``NotFound``) happens before the policy runs, so a private repository
reached through the wrong owner slug is reported as missing, not forbidden.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging

from booklab.core.auth import AuthenticationRequiredError, ForbiddenError, Principal, Role
from booklab.services.models import Owner, Privacy, RepositoryRecord

logger = logging.getLogger(__name__)

CONTRIBUTOR_ROLES = frozenset({Role.EDITOR, Role.ADMIN})
ADMIN_ROLES = frozenset({Role.ADMIN})


class Action(str, Enum):
    CREATE_REPOSITORY = "create_repository"
    VIEW_REPOSITORY = "view_repository"
    CONTRIBUTE_REPOSITORY = "contribute_repository"
    ADMINISTER_REPOSITORY = "administer_repository"
    TOGGLE_SOCIAL_ACTION = "toggle_social_action"


class DenyReason(str, Enum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    FORBIDDEN = "forbidden"


@dataclass(slots=True, frozen=True)
class Decision:
    allowed: bool
    reason: DenyReason | None = None

    def raise_for_denial(self, action: Action) -> None:
        if self.allowed:
            return
        if self.reason is DenyReason.AUTHENTICATION_REQUIRED:
            raise AuthenticationRequiredError(f"sign in required to {_describe(action)}")
        raise ForbiddenError(f"you are not allowed to {_describe(action)}")


ALLOW = Decision(allowed=True)
DENY_AUTHENTICATION = Decision(allowed=False, reason=DenyReason.AUTHENTICATION_REQUIRED)
DENY_FORBIDDEN = Decision(allowed=False, reason=DenyReason.FORBIDDEN)


def authorize(principal: Principal, action: Action, target: Owner | RepositoryRecord | None) -> Decision:
    if action is Action.CREATE_REPOSITORY:
        if principal.is_anonymous:
            return DENY_AUTHENTICATION
        if target is None or isinstance(target, RepositoryRecord):
            return DENY_FORBIDDEN
        return _owner_grants(target, principal, CONTRIBUTOR_ROLES)

    if not isinstance(target, RepositoryRecord):
        raise TypeError(f"{action.value} requires a repository target")

    if action is Action.VIEW_REPOSITORY:
        return _can_view(principal, target)

    if action is Action.TOGGLE_SOCIAL_ACTION:
        if principal.is_anonymous:
            return DENY_AUTHENTICATION
        return _can_view(principal, target)

    if action is Action.CONTRIBUTE_REPOSITORY:
        return _owner_grants(target.owner, principal, CONTRIBUTOR_ROLES)

    if action is Action.ADMINISTER_REPOSITORY:
        return _owner_grants(target.owner, principal, ADMIN_ROLES)

    raise ValueError(f"unsupported action: {action!r}")


def ensure_authorized(principal: Principal, action: Action, target: Owner | RepositoryRecord | None) -> None:
    decision = authorize(principal, action, target)
    if not decision.allowed:
        logger.info(
            "access denied action=%s principal=%s reason=%s",
            action.value,
            principal.subject,
            decision.reason.value if decision.reason else None,
        )
    decision.raise_for_denial(action)


def is_allowed(principal: Principal, action: Action, target: Owner | RepositoryRecord | None) -> bool:
    return authorize(principal, action, target).allowed


def creatable_owners(principal: Principal, owners: list[Owner]) -> list[Owner]:
    return [owner for owner in owners if is_allowed(principal, Action.CREATE_REPOSITORY, owner)]


def _can_view(principal: Principal, repository: RepositoryRecord) -> Decision:
    if repository.privacy is Privacy.PUBLIC:
        return ALLOW
    return _owner_grants(repository.owner, principal, CONTRIBUTOR_ROLES)


def _owner_grants(owner: Owner, principal: Principal, roles: frozenset[Role]) -> Decision:
    if principal.is_anonymous:
        return DENY_AUTHENTICATION
    if owner.is_principal(principal):
        return ALLOW
    if owner.resolve_role(principal) in roles:
        return ALLOW
    return DENY_FORBIDDEN


def _describe(action: Action) -> str:
    return action.value.replace("_", " ")

