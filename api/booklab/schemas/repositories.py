from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from booklab.core.slugs import normalize_slug

RepositoryPrivacy = Literal["public", "private"]
OwnerKind = Literal["user", "group"]
RepositoryLayout = Literal["toc", "docs"]


class OwnerOut(BaseModel):
    id: str
    slug: str
    name: str
    kind: OwnerKind


class RepositoryCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str
    description: str | None = Field(default=None, max_length=2000)
    privacy: RepositoryPrivacy = "public"
    owner_id: str = Field(min_length=1)
    has_toc: bool = True

    @field_validator("slug")
    @classmethod
    def _validate_slug(cls, value: str) -> str:
        return normalize_slug(value)


class RepositorySettingsPatchRequest(BaseModel):
    # owner and slug are immutable after creation
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    privacy: RepositoryPrivacy | None = None
    has_toc: bool | None = None


class RepositorySettingsOut(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    privacy: RepositoryPrivacy
    has_toc: bool
    owner: OwnerOut
    path: str
    updated_at: datetime | None = None


class DocLinkOut(BaseModel):
    slug: str
    title: str
    path: str


class SocialButtonOut(BaseModel):
    repository_id: str
    action_type: Literal["star", "watch"]
    active: bool
    count: int = Field(ge=0)
    selector: str
    label: str
    data_label: str
    data_undo_label: str
    method: Literal["post", "delete"]
    action_path: str


class RepositoryPageOut(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    privacy: RepositoryPrivacy
    owner: OwnerOut
    path: str
    stars_count: int = Field(ge=0)
    watches_count: int = Field(ge=0)
    show_private_label: bool
    can_create_doc: bool
    settings_path: str | None = None
    layout: RepositoryLayout
    docs: list[DocLinkOut] = Field(default_factory=list)
    social_buttons: list[SocialButtonOut] = Field(default_factory=list)


class NewRepositoryOut(BaseModel):
    owners: list[OwnerOut] = Field(default_factory=list)
    default_privacy: RepositoryPrivacy = "public"
