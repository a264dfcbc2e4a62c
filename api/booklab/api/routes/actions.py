from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response

from booklab.api.routes.repositories import resolve_repository
from booklab.core.auth import Principal
from booklab.core.negotiation import wants_script
from booklab.core.security import get_principal
from booklab.schemas.repositories import SocialButtonOut
from booklab.services import social
from booklab.services.models import SocialActionType
from booklab.services.policy import Action, ensure_authorized
from booklab.services.render import SocialActionFragment, render_social_action_script
from booklab.services.repository import RepositoryNotFoundError, RepositoryUnavailableError, get_repository

router = APIRouter()


@router.post("/{owner_slug}/{repo_slug}/action", response_model=SocialButtonOut)
async def create_social_action(
    owner_slug: str,
    repo_slug: str,
    request: Request,
    action_type: str | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    repository=Depends(get_repository),
):
    return await _apply(request, owner_slug, repo_slug, action_type, principal, repository, active=True)


@router.delete("/{owner_slug}/{repo_slug}/action", response_model=SocialButtonOut)
async def delete_social_action(
    owner_slug: str,
    repo_slug: str,
    request: Request,
    action_type: str | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    repository=Depends(get_repository),
):
    return await _apply(request, owner_slug, repo_slug, action_type, principal, repository, active=False)


async def _apply(
    request: Request,
    owner_slug: str,
    repo_slug: str,
    raw_action_type: str | None,
    principal: Principal,
    repository,
    *,
    active: bool,
):
    record = await resolve_repository(repository, owner_slug, repo_slug)
    # authorize before parsing action_type: anonymous callers always get the sign-in response
    ensure_authorized(principal, Action.TOGGLE_SOCIAL_ACTION, record)
    action_type = _parse_action_type(raw_action_type)

    operation = social.toggle if active else social.untoggle
    try:
        fragment = await operation(repository, principal, record, action_type)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return _respond(request, fragment)


def _parse_action_type(raw_action_type: str | None) -> SocialActionType:
    try:
        return SocialActionType(raw_action_type)
    except ValueError as exc:
        allowed = ", ".join(action_type.value for action_type in SocialActionType)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"action_type must be one of: {allowed}",
        ) from exc


def _respond(request: Request, fragment: SocialActionFragment) -> Response | SocialButtonOut:
    if wants_script(request):
        return Response(content=render_social_action_script(fragment), media_type="text/javascript")
    return SocialButtonOut(**fragment.to_dict())
