from __future__ import annotations

import logging
from typing import Any

from booklab.core.auth import Principal
from booklab.services.models import RepositoryRecord, SocialActionType
from booklab.services.policy import Action, ensure_authorized
from booklab.services.render import SocialActionFragment, social_button

logger = logging.getLogger(__name__)


async def toggle(
    store: Any,
    principal: Principal,
    repository: RepositoryRecord,
    action_type: SocialActionType,
) -> SocialActionFragment:
    """Record the principal's star/watch on a repository.

    Idempotent: a second toggle without an untoggle in between leaves the
    counter where it was.
    """
    ensure_authorized(principal, Action.TOGGLE_SOCIAL_ACTION, repository)
    result = await store.toggle_social_action(
        repository_id=repository.id,
        user_id=principal.require_authenticated(),
        action_type=action_type,
    )
    _log_result("toggle", principal, repository, result)
    return social_button(repository, action_type, active=True, count=result.count)


async def untoggle(
    store: Any,
    principal: Principal,
    repository: RepositoryRecord,
    action_type: SocialActionType,
) -> SocialActionFragment:
    ensure_authorized(principal, Action.TOGGLE_SOCIAL_ACTION, repository)
    result = await store.untoggle_social_action(
        repository_id=repository.id,
        user_id=principal.require_authenticated(),
        action_type=action_type,
    )
    _log_result("untoggle", principal, repository, result)
    return social_button(repository, action_type, active=False, count=result.count)


def _log_result(operation: str, principal: Principal, repository: RepositoryRecord, result: Any) -> None:
    logger.info(
        "social action %s repository=%s action_type=%s user=%s changed=%s count=%s",
        operation,
        repository.path,
        result.action_type.value,
        principal.actor_id,
        result.changed,
        result.count,
    )
