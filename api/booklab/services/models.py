from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from booklab.core.auth import Principal, Role


class Privacy(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class SocialActionType(str, Enum):
    STAR = "star"
    WATCH = "watch"

    @property
    def counter_field(self) -> str:
        return _COUNTER_FIELDS[self]


_COUNTER_FIELDS = {
    SocialActionType.STAR: "stars_count",
    SocialActionType.WATCH: "watches_count",
}


@dataclass(slots=True, frozen=True)
class UserOwner:
    id: str
    slug: str
    name: str
    kind: str = field(default="user", init=False)

    def resolve_role(self, principal: Principal) -> Role | None:
        return None

    def is_principal(self, principal: Principal) -> bool:
        return not principal.is_anonymous and principal.actor_id == self.id


@dataclass(slots=True, frozen=True)
class GroupOwner:
    id: str
    slug: str
    name: str
    member_roles: dict[str, Role] = field(default_factory=dict)
    kind: str = field(default="group", init=False)

    def resolve_role(self, principal: Principal) -> Role | None:
        if principal.is_anonymous:
            return None
        return self.member_roles.get(principal.actor_id or "")

    def is_principal(self, principal: Principal) -> bool:
        return False


Owner = UserOwner | GroupOwner


@dataclass(slots=True)
class RepositoryRecord:
    id: str
    name: str
    slug: str
    description: str | None
    privacy: Privacy
    owner: Owner
    stars_count: int = 0
    watches_count: int = 0
    has_toc: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def path(self) -> str:
        return repository_path(self.owner.slug, self.slug)

    def to_path(self, suffix: str = "") -> str:
        return f"{self.path}{suffix}"

    def count_for(self, action_type: SocialActionType) -> int:
        return int(getattr(self, action_type.counter_field))


@dataclass(slots=True)
class DocRecord:
    id: str
    repository_id: str
    slug: str
    title: str
    position: int = 0


def repository_path(owner_slug: str, repo_slug: str) -> str:
    return f"/{owner_slug}/{repo_slug}"
