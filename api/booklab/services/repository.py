from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from booklab.core.auth import Role
from booklab.core.config import get_settings
from booklab.services.models import (
    DocRecord,
    GroupOwner,
    Owner,
    Privacy,
    RepositoryRecord,
    SocialActionType,
    UserOwner,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates a uniqueness or immutability rule."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(slots=True)
class SocialActionResult:
    repository_id: str
    action_type: SocialActionType
    active: bool
    count: int
    changed: bool


_REPOSITORY_COLUMNS = """
  r.id::text as id,
  r.name,
  r.slug,
  r.description,
  r.privacy,
  r.stars_count,
  r.watches_count,
  r.has_toc,
  r.created_at,
  r.updated_at,
  r.owner_id::text as owner_id
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_user(self, *, user_id: str) -> UserOwner:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                select id::text as id, kind, slug, name
                from users
                where id = $1::uuid and kind = 'user'
                """,
                user_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("user not found") from exc
        if not row:
            raise RepositoryNotFoundError("user not found")
        return UserOwner(id=row["id"], slug=row["slug"], name=row["name"])

    async def get_owner_by_slug(self, slug: str) -> Owner:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                select id::text as id, kind, slug, name
                from users
                where slug = $1
                """,
                slug.lower(),
            )
            if not row:
                raise RepositoryNotFoundError("owner not found")
            return await self._owner_from_row(conn, row)

    async def get_owner_by_id(self, owner_id: str) -> Owner:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    select id::text as id, kind, slug, name
                    from users
                    where id = $1::uuid
                    """,
                    owner_id,
                )
            except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
                raise RepositoryNotFoundError("owner not found") from exc
            if not row:
                raise RepositoryNotFoundError("owner not found")
            return await self._owner_from_row(conn, row)

    async def list_owner_choices(self, *, user_id: str) -> list[Owner]:
        """Return the user followed by every group the user holds a role in."""
        user = await self.get_user(user_id=user_id)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                select u.id::text as id, u.kind, u.slug, u.name
                from group_roles gr
                join users u on u.id = gr.group_id
                where gr.user_id = $1::uuid
                order by u.slug
                """,
                user_id,
            )
            groups = [await self._owner_from_row(conn, row) for row in rows]
        return [user, *groups]

    async def find_repository(self, *, owner_slug: str, repo_slug: str) -> RepositoryRecord:
        owner = await self.get_owner_by_slug(owner_slug)
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_REPOSITORY_COLUMNS}
            from repositories r
            where r.owner_id = $1::uuid and r.slug = $2
            """,
            owner.id,
            repo_slug.lower(),
        )
        if not row:
            raise RepositoryNotFoundError("repository not found")
        return self._repository_row_to_record(row, owner)

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
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into repositories as r (owner_id, name, slug, description, privacy, has_toc)
                values ($1::uuid, $2, $3, $4, $5, $6)
                returning {_REPOSITORY_COLUMNS}
                """,
                owner.id,
                name,
                slug,
                description,
                privacy.value,
                has_toc,
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(f"repository slug '{slug}' already exists for {owner.slug}") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError("owner not found") from exc
        if not row:
            raise RepositoryConflictError("failed to create repository")
        logger.info("repository created owner=%s slug=%s privacy=%s", owner.slug, slug, privacy.value)
        return self._repository_row_to_record(row, owner)

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
        if not changes:
            return repository

        assignments: list[str] = []
        values: list[Any] = [repository.id]
        for index, (column, value) in enumerate(sorted(changes.items()), start=2):
            assignments.append(f"{column} = ${index}")
            values.append(value.value if isinstance(value, Privacy) else value)

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            update repositories as r
            set {", ".join(assignments)}, updated_at = now()
            where r.id = $1::uuid
            returning {_REPOSITORY_COLUMNS}
            """,
            *values,
        )
        if not row:
            raise RepositoryNotFoundError("repository not found")
        return self._repository_row_to_record(row, repository.owner)

    async def list_docs(self, *, repository_id: str) -> list[DocRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id::text as id, repository_id::text as repository_id, slug, title, position
            from docs
            where repository_id = $1::uuid
            order by position, created_at
            """,
            repository_id,
        )
        return [
            DocRecord(
                id=row["id"],
                repository_id=row["repository_id"],
                slug=row["slug"],
                title=row["title"],
                position=int(row["position"]),
            )
            for row in rows
        ]

    async def list_social_action_types(self, *, repository_id: str, user_id: str) -> set[SocialActionType]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select action_type
            from social_actions
            where repository_id = $1::uuid and user_id = $2::uuid
            """,
            repository_id,
            user_id,
        )
        return {SocialActionType(row["action_type"]) for row in rows}

    async def toggle_social_action(
        self,
        *,
        repository_id: str,
        user_id: str,
        action_type: SocialActionType,
    ) -> SocialActionResult:
        return await self._apply_social_action(
            repository_id=repository_id,
            user_id=user_id,
            action_type=action_type,
            active=True,
        )

    async def untoggle_social_action(
        self,
        *,
        repository_id: str,
        user_id: str,
        action_type: SocialActionType,
    ) -> SocialActionResult:
        return await self._apply_social_action(
            repository_id=repository_id,
            user_id=user_id,
            action_type=action_type,
            active=False,
        )

    async def _apply_social_action(
        self,
        *,
        repository_id: str,
        user_id: str,
        action_type: SocialActionType,
        active: bool,
    ) -> SocialActionResult:
        counter = action_type.counter_field
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                # Row lock serializes concurrent toggles on the same repository.
                locked = await conn.fetchval(
                    "select 1 from repositories where id = $1::uuid for update",
                    repository_id,
                )
                if not locked:
                    raise RepositoryNotFoundError("repository not found")

                if active:
                    status = await conn.execute(
                        """
                        insert into social_actions (repository_id, user_id, action_type)
                        values ($1::uuid, $2::uuid, $3)
                        on conflict (repository_id, user_id, action_type) do nothing
                        """,
                        repository_id,
                        user_id,
                        action_type.value,
                    )
                else:
                    status = await conn.execute(
                        """
                        delete from social_actions
                        where repository_id = $1::uuid and user_id = $2::uuid and action_type = $3
                        """,
                        repository_id,
                        user_id,
                        action_type.value,
                    )
                changed = not status.endswith(" 0")

                count = await conn.fetchval(
                    f"""
                    update repositories
                    set {counter} = (
                      select count(*)
                      from social_actions
                      where repository_id = $1::uuid and action_type = $2
                    )
                    where id = $1::uuid
                    returning {counter}
                    """,
                    repository_id,
                    action_type.value,
                )

        return SocialActionResult(
            repository_id=repository_id,
            action_type=action_type,
            active=active,
            count=int(count or 0),
            changed=changed,
        )

    async def _owner_from_row(self, conn: asyncpg.Connection, row: asyncpg.Record) -> Owner:
        if row["kind"] != "group":
            return UserOwner(id=row["id"], slug=row["slug"], name=row["name"])
        role_rows = await conn.fetch(
            """
            select user_id::text as user_id, role
            from group_roles
            where group_id = $1::uuid
            """,
            row["id"],
        )
        return GroupOwner(
            id=row["id"],
            slug=row["slug"],
            name=row["name"],
            member_roles={role_row["user_id"]: Role(role_row["role"]) for role_row in role_rows},
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("BOOKLAB_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _repository_row_to_record(row: asyncpg.Record, owner: Owner) -> RepositoryRecord:
        return RepositoryRecord(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            description=row["description"],
            privacy=Privacy(row["privacy"]),
            owner=owner,
            stars_count=max(0, int(row["stars_count"])),
            watches_count=max(0, int(row["watches_count"])),
            has_toc=bool(row["has_toc"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@lru_cache
def get_repository() -> Any:
    settings = get_settings()
    if settings.storage_backend == "memory":
        from booklab.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
