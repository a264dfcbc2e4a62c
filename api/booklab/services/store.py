from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from booklab.core.auth import Role
from booklab.core.slugs import normalize_owner_slug
from booklab.services.models import (
    DocRecord,
    GroupOwner,
    Owner,
    Privacy,
    RepositoryRecord,
    SocialActionType,
    UserOwner,
)
from booklab.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    SocialActionResult,
)


class InMemoryRepository:
    """Process-local storage with the same coroutine interface as PostgresRepository.

    Used for local development (``BOOKLAB_STORAGE_BACKEND=memory``) and tests.
    Mutations are serialized by a single lock, so counters always equal the
    number of stored social action rows.
    """

    def __init__(self) -> None:
        self.owners: dict[str, dict[str, Any]] = {}
        self.group_roles: dict[tuple[str, str], Role] = {}
        self.repositories: dict[str, dict[str, Any]] = {}
        self.docs: dict[str, list[DocRecord]] = {}
        self.social_actions: set[tuple[str, str, SocialActionType]] = set()
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    def add_user(self, slug: str, name: str | None = None, *, user_id: str | None = None) -> UserOwner:
        return self._add_owner("user", slug, name, owner_id=user_id)

    def add_group(self, slug: str, name: str | None = None, *, group_id: str | None = None) -> GroupOwner:
        return self._add_owner("group", slug, name, owner_id=group_id)

    def grant_role(self, *, group_id: str, user_id: str, role: Role | str) -> None:
        if self.owners.get(group_id, {}).get("kind") != "group":
            raise RepositoryNotFoundError("group not found")
        self.group_roles[(group_id, user_id)] = Role(role)

    def revoke_role(self, *, group_id: str, user_id: str) -> None:
        self.group_roles.pop((group_id, user_id), None)

    def add_doc(self, repository_id: str, slug: str, title: str | None = None) -> DocRecord:
        docs = self.docs.setdefault(repository_id, [])
        doc = DocRecord(
            id=str(uuid4()),
            repository_id=repository_id,
            slug=slug,
            title=title or slug,
            position=len(docs),
        )
        docs.append(doc)
        return doc

    async def get_user(self, *, user_id: str) -> UserOwner:
        row = self.owners.get(user_id)
        if not row or row["kind"] != "user":
            raise RepositoryNotFoundError("user not found")
        return self._owner_from_row(row)  # type: ignore[return-value]

    async def get_owner_by_slug(self, slug: str) -> Owner:
        normalized = slug.lower()
        for row in self.owners.values():
            if row["slug"] == normalized:
                return self._owner_from_row(row)
        raise RepositoryNotFoundError("owner not found")

    async def get_owner_by_id(self, owner_id: str) -> Owner:
        row = self.owners.get(owner_id)
        if not row:
            raise RepositoryNotFoundError("owner not found")
        return self._owner_from_row(row)

    async def list_owner_choices(self, *, user_id: str) -> list[Owner]:
        user = await self.get_user(user_id=user_id)
        group_ids = sorted(
            (group_id for group_id, member_id in self.group_roles if member_id == user_id),
            key=lambda group_id: self.owners[group_id]["slug"],
        )
        return [user, *(self._owner_from_row(self.owners[group_id]) for group_id in group_ids)]

    async def find_repository(self, *, owner_slug: str, repo_slug: str) -> RepositoryRecord:
        owner = await self.get_owner_by_slug(owner_slug)
        normalized = repo_slug.lower()
        for row in self.repositories.values():
            if row["owner_id"] == owner.id and row["slug"] == normalized:
                return self._repository_from_row(row, owner)
        raise RepositoryNotFoundError("repository not found")

    async def create_repository(
        self,
        *,
        owner: Owner,
        name: str,
        slug: str,
        description: str | None,
        privacy: Privacy,
        has_toc: bool = True,
    ) -> RepositoryRecord:
        async with self._lock:
            if owner.id not in self.owners:
                raise RepositoryNotFoundError("owner not found")
            if any(row["owner_id"] == owner.id and row["slug"] == slug for row in self.repositories.values()):
                raise RepositoryConflictError(f"repository slug '{slug}' already exists for {owner.slug}")
            now = datetime.now(timezone.utc)
            row = {
                "id": str(uuid4()),
                "owner_id": owner.id,
                "name": name,
                "slug": slug,
                "description": description,
                "privacy": privacy,
                "stars_count": 0,
                "watches_count": 0,
                "has_toc": has_toc,
                "created_at": now,
                "updated_at": now,
            }
            self.repositories[row["id"]] = row
            return self._repository_from_row(row, owner)

    async def update_repository(
        self,
        *,
        repository: RepositoryRecord,
        changes: dict[str, Any],
    ) -> RepositoryRecord:
        allowed = {"name", "description", "privacy", "has_toc"}
        unknown = set(changes) - allowed
        if unknown:
            raise RepositoryValidationError(f"immutable repository fields: {sorted(unknown)}")
        async with self._lock:
            row = self.repositories.get(repository.id)
            if row is None:
                raise RepositoryNotFoundError("repository not found")
            if changes:
                row.update(changes)
                row["updated_at"] = datetime.now(timezone.utc)
            return self._repository_from_row(row, repository.owner)

    async def list_docs(self, *, repository_id: str) -> list[DocRecord]:
        return sorted(self.docs.get(repository_id, []), key=lambda doc: doc.position)

    async def list_social_action_types(self, *, repository_id: str, user_id: str) -> set[SocialActionType]:
        return {
            action_type
            for stored_repository_id, stored_user_id, action_type in self.social_actions
            if stored_repository_id == repository_id and stored_user_id == user_id
        }

    async def toggle_social_action(
        self,
        *,
        repository_id: str,
        user_id: str,
        action_type: SocialActionType,
    ) -> SocialActionResult:
        return await self._apply_social_action(repository_id, user_id, action_type, active=True)

    async def untoggle_social_action(
        self,
        *,
        repository_id: str,
        user_id: str,
        action_type: SocialActionType,
    ) -> SocialActionResult:
        return await self._apply_social_action(repository_id, user_id, action_type, active=False)

    async def _apply_social_action(
        self,
        repository_id: str,
        user_id: str,
        action_type: SocialActionType,
        *,
        active: bool,
    ) -> SocialActionResult:
        async with self._lock:
            row = self.repositories.get(repository_id)
            if row is None:
                raise RepositoryNotFoundError("repository not found")

            key = (repository_id, user_id, action_type)
            changed = (key in self.social_actions) != active
            if active:
                self.social_actions.add(key)
            else:
                self.social_actions.discard(key)

            count = sum(
                1
                for stored_repository_id, _, stored_type in self.social_actions
                if stored_repository_id == repository_id and stored_type is action_type
            )
            row[action_type.counter_field] = count

        return SocialActionResult(
            repository_id=repository_id,
            action_type=action_type,
            active=active,
            count=count,
            changed=changed,
        )

    def _add_owner(self, kind: str, slug: str, name: str | None, *, owner_id: str | None) -> Any:
        try:
            normalized = normalize_owner_slug(slug)
        except ValueError as exc:
            raise RepositoryValidationError(str(exc)) from exc
        if any(row["slug"] == normalized for row in self.owners.values()):
            raise RepositoryConflictError(f"slug '{normalized}' is taken")
        row = {"id": owner_id or str(uuid4()), "kind": kind, "slug": normalized, "name": name or slug}
        self.owners[row["id"]] = row
        return self._owner_from_row(row)

    def _owner_from_row(self, row: dict[str, Any]) -> Owner:
        if row["kind"] != "group":
            return UserOwner(id=row["id"], slug=row["slug"], name=row["name"])
        return GroupOwner(
            id=row["id"],
            slug=row["slug"],
            name=row["name"],
            member_roles={
                member_id: role
                for (group_id, member_id), role in self.group_roles.items()
                if group_id == row["id"]
            },
        )

    @staticmethod
    def _repository_from_row(row: dict[str, Any], owner: Owner) -> RepositoryRecord:
        return RepositoryRecord(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            description=row["description"],
            privacy=Privacy(row["privacy"]),
            owner=owner,
            stars_count=row["stars_count"],
            watches_count=row["watches_count"],
            has_toc=bool(row["has_toc"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
