from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse

from booklab.core.auth import ForbiddenError, Principal
from booklab.core.security import get_authenticated_principal, get_principal
from booklab.schemas.repositories import (
    NewRepositoryOut,
    OwnerOut,
    RepositoryCreateRequest,
    RepositoryPageOut,
    RepositorySettingsOut,
    RepositorySettingsPatchRequest,
)
from booklab.services.models import Owner, Privacy, RepositoryRecord, SocialActionType
from booklab.services.policy import Action, creatable_owners, ensure_authorized
from booklab.services.render import render_repository_page
from booklab.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


async def resolve_repository(repository: Any, owner_slug: str, repo_slug: str) -> RepositoryRecord:
    try:
        return await repository.find_repository(owner_slug=owner_slug, repo_slug=repo_slug)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/new", response_model=NewRepositoryOut)
async def new_repository(
    principal: Principal = Depends(get_authenticated_principal),
    repository=Depends(get_repository),
) -> NewRepositoryOut:
    user_id = principal.require_authenticated()

    try:
        owners = await repository.list_owner_choices(user_id=user_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return NewRepositoryOut(owners=[_owner_out(owner) for owner in creatable_owners(principal, owners)])


@router.post("/repositories", status_code=status.HTTP_302_FOUND, response_class=RedirectResponse)
async def create_repository(
    payload: RepositoryCreateRequest,
    principal: Principal = Depends(get_authenticated_principal),
    repository=Depends(get_repository),
) -> RedirectResponse:
    try:
        owner = await repository.get_owner_by_id(payload.owner_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise ForbiddenError("unknown repository owner") from exc

    ensure_authorized(principal, Action.CREATE_REPOSITORY, owner)

    try:
        created = await repository.create_repository(
            owner=owner,
            name=payload.name,
            slug=payload.slug,
            description=payload.description,
            privacy=Privacy(payload.privacy),
            has_toc=payload.has_toc,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return RedirectResponse(url=created.path, status_code=status.HTTP_302_FOUND)


@router.get("/{owner_slug}/{repo_slug}", response_model=RepositoryPageOut)
async def show_repository(
    owner_slug: str,
    repo_slug: str,
    principal: Principal = Depends(get_principal),
    repository=Depends(get_repository),
) -> RepositoryPageOut:
    record = await resolve_repository(repository, owner_slug, repo_slug)
    ensure_authorized(principal, Action.VIEW_REPOSITORY, record)

    try:
        docs = await repository.list_docs(repository_id=record.id)
        active_actions: set[SocialActionType] = set()
        if not principal.is_anonymous:
            active_actions = await repository.list_social_action_types(
                repository_id=record.id,
                user_id=principal.actor_id,
            )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return RepositoryPageOut(
        **render_repository_page(principal, record, docs=docs, active_actions=active_actions)
    )


@router.get("/{owner_slug}/{repo_slug}/settings", response_model=RepositorySettingsOut)
async def show_repository_settings(
    owner_slug: str,
    repo_slug: str,
    principal: Principal = Depends(get_principal),
    repository=Depends(get_repository),
) -> RepositorySettingsOut:
    record = await resolve_repository(repository, owner_slug, repo_slug)
    ensure_authorized(principal, Action.ADMINISTER_REPOSITORY, record)
    return _settings_out(record)


@router.patch("/{owner_slug}/{repo_slug}/settings", response_model=RepositorySettingsOut)
async def patch_repository_settings(
    owner_slug: str,
    repo_slug: str,
    payload: RepositorySettingsPatchRequest,
    principal: Principal = Depends(get_principal),
    repository=Depends(get_repository),
) -> RepositorySettingsOut:
    record = await resolve_repository(repository, owner_slug, repo_slug)
    ensure_authorized(principal, Action.ADMINISTER_REPOSITORY, record)

    changes: dict[str, Any] = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="name must not be null")
    if "privacy" in changes:
        if changes["privacy"] is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="privacy must not be null")
        changes["privacy"] = Privacy(changes["privacy"])
    if "has_toc" in changes and changes["has_toc"] is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="has_toc must not be null")

    try:
        updated = await repository.update_repository(repository=record, changes=changes)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return _settings_out(updated)


def _owner_out(owner: Owner) -> OwnerOut:
    return OwnerOut(id=owner.id, slug=owner.slug, name=owner.name, kind=owner.kind)


def _settings_out(record: RepositoryRecord) -> RepositorySettingsOut:
    return RepositorySettingsOut(
        id=record.id,
        name=record.name,
        slug=record.slug,
        description=record.description,
        privacy=record.privacy.value,
        has_toc=record.has_toc,
        owner=_owner_out(record.owner),
        path=record.path,
        updated_at=record.updated_at,
    )
