from booklab.core.auth import ANONYMOUS, Principal, PrincipalType, Role
from booklab.services.models import DocRecord, GroupOwner, Privacy, RepositoryRecord, SocialActionType
from booklab.services.render import render_repository_page, render_social_action_script, social_button

GROUP = GroupOwner(
    id="group-1",
    slug="docs-team",
    name="Docs Team",
    member_roles={"editor-1": Role.EDITOR, "admin-1": Role.ADMIN},
)
REPO = RepositoryRecord(
    id="repo-1",
    name="Handbook",
    slug="handbook",
    description="Team handbook",
    privacy=Privacy.PRIVATE,
    owner=GROUP,
    stars_count=3,
    watches_count=1,
)


def _user(user_id: str) -> Principal:
    return Principal(principal_type=PrincipalType.USER, subject=user_id, actor_id=user_id)


def test_script_fragment_for_active_star_uses_undo_label() -> None:
    fragment = social_button(REPO, SocialActionType.STAR, active=True, count=4)
    script = render_social_action_script(fragment)

    assert '$(".repository-repo-1-star-button")' in script
    assert 'btn.attr("data-undo-label")' in script
    assert '.text("4")' in script
    assert 'btn.attr("data-method", "delete")' in script


def test_script_fragment_for_inactive_watch_uses_label() -> None:
    fragment = social_button(REPO, SocialActionType.WATCH, active=False, count=0)
    script = render_social_action_script(fragment)

    assert ".repository-repo-1-watch-button" in script
    assert 'btn.attr("data-label")' in script
    assert 'btn.attr("data-method", "post")' in script


def test_social_button_payload() -> None:
    payload = social_button(REPO, SocialActionType.STAR, active=False, count=3).to_dict()

    assert payload["selector"] == ".repository-repo-1-star-button"
    assert payload["label"] == "Star"
    assert payload["data_undo_label"] == "Unstar"
    assert payload["action_path"] == "/docs-team/handbook/action?action_type=star"


def test_page_for_editor_shows_create_doc_but_not_settings() -> None:
    page = render_repository_page(_user("editor-1"), REPO, docs=[], active_actions={SocialActionType.WATCH})

    assert page["can_create_doc"] is True
    assert page["settings_path"] is None
    assert page["show_private_label"] is True
    buttons = {button["action_type"]: button for button in page["social_buttons"]}
    assert buttons["watch"]["active"] is True
    assert buttons["star"]["active"] is False
    assert buttons["star"]["count"] == 3


def test_page_for_admin_links_settings() -> None:
    page = render_repository_page(_user("admin-1"), REPO, docs=[], active_actions=set())

    assert page["settings_path"] == "/docs-team/handbook/settings"


def test_page_lists_docs_with_paths_and_layout() -> None:
    docs = [
        DocRecord(id="d1", repository_id="repo-1", slug="intro", title="Intro", position=0),
        DocRecord(id="d2", repository_id="repo-1", slug="setup", title="Setup", position=1),
    ]
    page = render_repository_page(ANONYMOUS, REPO, docs=docs, active_actions=set())

    assert page["layout"] == "toc"
    assert [doc["path"] for doc in page["docs"]] == ["/docs-team/handbook/intro", "/docs-team/handbook/setup"]
    assert page["can_create_doc"] is False
