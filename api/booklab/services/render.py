from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any

from booklab.core.auth import Principal
from booklab.services.models import DocRecord, Privacy, RepositoryRecord, SocialActionType
from booklab.services.policy import Action, is_allowed

BUTTON_LABELS: dict[SocialActionType, tuple[str, str]] = {
    SocialActionType.STAR: ("Star", "Unstar"),
    SocialActionType.WATCH: ("Watch", "Unwatch"),
}


@dataclass(slots=True, frozen=True)
class SocialActionFragment:
    repository_id: str
    action_type: SocialActionType
    active: bool
    count: int
    action_path: str

    @property
    def selector(self) -> str:
        return social_button_selector(self.repository_id, self.action_type)

    @property
    def label(self) -> str:
        label, undo_label = BUTTON_LABELS[self.action_type]
        return undo_label if self.active else label

    @property
    def next_method(self) -> str:
        return "delete" if self.active else "post"

    def to_dict(self) -> dict[str, Any]:
        label, undo_label = BUTTON_LABELS[self.action_type]
        return {
            "repository_id": self.repository_id,
            "action_type": self.action_type.value,
            "active": self.active,
            "count": self.count,
            "selector": self.selector,
            "label": self.label,
            "data_label": label,
            "data_undo_label": undo_label,
            "method": self.next_method,
            "action_path": self.action_path,
        }


def social_button_selector(repository_id: str, action_type: SocialActionType) -> str:
    return f".repository-{repository_id}-{action_type.value}-button"


def social_button(repository: RepositoryRecord, action_type: SocialActionType, *, active: bool, count: int) -> SocialActionFragment:
    return SocialActionFragment(
        repository_id=repository.id,
        action_type=action_type,
        active=active,
        count=max(0, count),
        action_path=f"{repository.to_path('/action')}?action_type={action_type.value}",
    )


def render_social_action_script(fragment: SocialActionFragment) -> str:
    """Script-format response that updates one button in place.

    Every statement is scoped to the fragment's selector so several buttons
    on a page update independently.
    """
    label_attr = "data-undo-label" if fragment.active else "data-label"
    selector = json.dumps(fragment.selector)
    return (
        "(function() {\n"
        f"  var btn = $({selector});\n"
        f'  btn.find(".social-label").text(btn.attr("{label_attr}"));\n'
        f'  btn.find(".social-count").text("{fragment.count}");\n'
        f'  btn.attr("data-method", "{fragment.next_method}");\n'
        f'  btn.toggleClass("active", {"true" if fragment.active else "false"});\n'
        "})();\n"
    )


def render_repository_page(
    principal: Principal,
    repository: RepositoryRecord,
    *,
    docs: list[DocRecord],
    active_actions: set[SocialActionType],
) -> dict[str, Any]:
    can_administer = is_allowed(principal, Action.ADMINISTER_REPOSITORY, repository)
    return {
        "id": repository.id,
        "name": repository.name,
        "slug": repository.slug,
        "description": repository.description,
        "privacy": repository.privacy.value,
        "owner": {
            "id": repository.owner.id,
            "slug": repository.owner.slug,
            "name": repository.owner.name,
            "kind": repository.owner.kind,
        },
        "path": repository.path,
        "stars_count": repository.stars_count,
        "watches_count": repository.watches_count,
        "show_private_label": repository.privacy is Privacy.PRIVATE,
        "can_create_doc": is_allowed(principal, Action.CONTRIBUTE_REPOSITORY, repository),
        "settings_path": repository.to_path("/settings") if can_administer else None,
        "layout": "toc" if repository.has_toc else "docs",
        "docs": [
            {
                "slug": doc.slug,
                "title": doc.title,
                "path": repository.to_path(f"/{doc.slug}"),
            }
            for doc in docs
        ],
        "social_buttons": [
            social_button(
                repository,
                action_type,
                active=action_type in active_actions,
                count=repository.count_for(action_type),
            ).to_dict()
            for action_type in SocialActionType
        ],
    }
