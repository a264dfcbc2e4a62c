from __future__ import annotations

import asyncio
from collections.abc import Callable

from fastapi.testclient import TestClient

from booklab.services.models import Privacy, RepositoryRecord
from booklab.services.store import InMemoryRepository


def _create(store: InMemoryRepository, owner, slug: str, *, privacy: Privacy = Privacy.PUBLIC) -> RepositoryRecord:
    return asyncio.run(
        store.create_repository(
            owner=owner,
            name=f"Repo {slug}",
            slug=slug,
            description=f"About {slug}",
            privacy=privacy,
        )
    )


def test_new_requires_user(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    response = client.get("/new")
    assert response.status_code == 302
    assert response.headers["location"].startswith("/account/sign_in?return_to=%2Fnew")

    user = store.add_user("jason")
    response = client.get("/new", headers=sign_in(user.id))
    assert response.status_code == 200
    assert [owner["slug"] for owner in response.json()["owners"]] == ["jason"]


def test_new_lists_groups_where_user_can_create(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    user = store.add_user("jason")
    editor_group = store.add_group("writers")
    store.add_group("strangers")
    store.grant_role(group_id=editor_group.id, user_id=user.id, role="editor")

    response = client.get("/new", headers=sign_in(user.id))

    assert response.status_code == 200
    owners = response.json()["owners"]
    assert [(owner["slug"], owner["kind"]) for owner in owners] == [("jason", "user"), ("writers", "group")]


def test_new_for_json_client_answers_401(client: TestClient) -> None:
    response = client.get("/new", headers={"Accept": "application/json"})
    assert response.status_code == 401
    assert response.json() == {"detail": "sign in required"}


def test_create_repository_requires_user(client: TestClient, store: InMemoryRepository) -> None:
    owner = store.add_user("jason")
    response = client.post(
        "/repositories",
        json={"name": "Guide", "slug": "guide", "owner_id": owner.id},
    )
    assert response.status_code == 302
    assert "/account/sign_in" in response.headers["location"]
    assert store.repositories == {}


def test_create_repository_for_self(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    user = store.add_user("jason")
    headers = sign_in(user.id)
    payload = {
        "name": "Field Guide",
        "slug": "field-guide",
        "description": "How we work",
        "privacy": "private",
        "owner_id": "1234",
    }

    response = client.post("/repositories", json=payload, headers=headers)
    assert response.status_code == 403

    payload["owner_id"] = user.id
    response = client.post("/repositories", json=payload, headers=headers)
    assert response.status_code == 302
    assert response.headers["location"] == "/jason/field-guide"

    created = asyncio.run(store.find_repository(owner_slug="jason", repo_slug="field-guide"))
    assert created.name == "Field Guide"
    assert created.description == "How we work"
    assert created.privacy is Privacy.PRIVATE
    assert created.owner.id == user.id


def test_create_repository_for_another_user_is_forbidden(
    client: TestClient,
    store: InMemoryRepository,
    sign_in: Callable,
) -> None:
    user = store.add_user("jason")
    other = store.add_user("maria")

    response = client.post(
        "/repositories",
        json={"name": "Guide", "slug": "guide", "owner_id": other.id},
        headers=sign_in(user.id),
    )
    assert response.status_code == 403
    assert store.repositories == {}


def test_create_repository_for_group_requires_editor(
    client: TestClient,
    store: InMemoryRepository,
    sign_in: Callable,
) -> None:
    user = store.add_user("jason")
    group = store.add_group("writers")
    headers = sign_in(user.id)
    payload = {"name": "Style Guide", "slug": "style-guide", "description": "House style", "owner_id": group.id}

    response = client.post("/repositories", json=payload, headers=headers)
    assert response.status_code == 403

    store.grant_role(group_id=group.id, user_id=user.id, role="editor")
    response = client.post("/repositories", json=payload, headers=headers)
    assert response.status_code == 302
    assert response.headers["location"] == "/writers/style-guide"

    created = asyncio.run(store.find_repository(owner_slug="writers", repo_slug="style-guide"))
    assert created.name == "Style Guide"
    assert created.description == "House style"
    assert created.privacy is Privacy.PUBLIC
    assert created.owner.id == group.id


def test_create_repository_rejects_duplicate_slug(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    user = store.add_user("jason")
    _create(store, user, "guide")

    response = client.post(
        "/repositories",
        json={"name": "Guide again", "slug": "Guide", "owner_id": user.id},
        headers=sign_in(user.id),
    )
    assert response.status_code == 409


def test_create_repository_rejects_invalid_slug(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    user = store.add_user("jason")

    response = client.post(
        "/repositories",
        json={"name": "Guide", "slug": "bad slug!", "owner_id": user.id},
        headers=sign_in(user.id),
    )
    assert response.status_code == 422


def test_show_public_repository(client: TestClient, store: InMemoryRepository) -> None:
    group = store.add_group("writers")
    repo = _create(store, group, "handbook")

    response = client.get("/writers/handbook")

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == repo.name
    assert body["can_create_doc"] is False
    assert body["show_private_label"] is False
    assert body["settings_path"] is None
    assert body["layout"] == "toc"


def test_show_repository_with_wrong_owner_slug_is_not_found(client: TestClient, store: InMemoryRepository) -> None:
    group = store.add_group("writers")
    store.add_user("jason")
    _create(store, group, "handbook", privacy=Privacy.PRIVATE)

    assert client.get("/foo/handbook").status_code == 404
    assert client.get("/jason/handbook").status_code == 404
    assert client.get("/writers/missing").status_code == 404


def test_show_private_repository_by_role(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    group = store.add_group("writers")
    _create(store, group, "secret", privacy=Privacy.PRIVATE)
    reader = store.add_user("reader")
    editor = store.add_user("editor")
    admin = store.add_user("admin-user")
    store.grant_role(group_id=group.id, user_id=editor.id, role="editor")
    store.grant_role(group_id=group.id, user_id=admin.id, role="admin")

    response = client.get("/writers/secret")
    assert response.status_code == 302

    response = client.get("/writers/secret", headers={"Accept": "application/json"})
    assert response.status_code == 401

    response = client.get("/writers/secret", headers=sign_in(reader.id))
    assert response.status_code == 403

    response = client.get("/writers/secret", headers=sign_in(editor.id))
    assert response.status_code == 200
    body = response.json()
    assert body["settings_path"] is None
    assert body["can_create_doc"] is True
    assert body["show_private_label"] is True

    response = client.get("/writers/secret", headers=sign_in(admin.id))
    assert response.status_code == 200
    body = response.json()
    assert body["settings_path"] == "/writers/secret/settings"
    assert body["can_create_doc"] is True


def test_show_repository_layout_and_docs(client: TestClient, store: InMemoryRepository) -> None:
    group = store.add_group("writers")
    repo = _create(store, group, "handbook")
    first = store.add_doc(repo.id, "intro", "Introduction")
    second = store.add_doc(repo.id, "setup", "Setup")

    body = client.get("/writers/handbook").json()
    assert [doc["path"] for doc in body["docs"]] == [
        f"/writers/handbook/{first.slug}",
        f"/writers/handbook/{second.slug}",
    ]

    asyncio.run(store.update_repository(repository=repo, changes={"has_toc": False}))
    body = client.get("/writers/handbook").json()
    assert body["layout"] == "docs"


def test_settings_require_admin(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    group = store.add_group("writers")
    _create(store, group, "handbook")
    editor = store.add_user("editor")
    admin = store.add_user("admin-user")
    store.grant_role(group_id=group.id, user_id=editor.id, role="editor")
    store.grant_role(group_id=group.id, user_id=admin.id, role="admin")

    assert client.get("/writers/handbook/settings", headers=sign_in(editor.id)).status_code == 403

    response = client.get("/writers/handbook/settings", headers=sign_in(admin.id))
    assert response.status_code == 200
    assert response.json()["owner"]["slug"] == "writers"


def test_patch_settings_updates_mutable_fields(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    user = store.add_user("jason")
    _create(store, user, "guide")
    headers = sign_in(user.id)

    response = client.patch(
        "/jason/guide/settings",
        json={"name": "Renamed", "privacy": "private", "has_toc": False},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Renamed"
    assert body["privacy"] == "private"
    assert body["has_toc"] is False

    reloaded = asyncio.run(store.find_repository(owner_slug="jason", repo_slug="guide"))
    assert reloaded.privacy is Privacy.PRIVATE


def test_patch_settings_cannot_change_owner(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    user = store.add_user("jason")
    group = store.add_group("writers")
    _create(store, user, "guide")

    response = client.patch(
        "/jason/guide/settings",
        json={"owner_id": group.id},
        headers=sign_in(user.id),
    )
    assert response.status_code == 422

    reloaded = asyncio.run(store.find_repository(owner_slug="jason", repo_slug="guide"))
    assert reloaded.owner.id == user.id


def test_patch_settings_requires_admin(client: TestClient, store: InMemoryRepository, sign_in: Callable) -> None:
    group = store.add_group("writers")
    _create(store, group, "handbook")
    editor = store.add_user("editor")
    store.grant_role(group_id=group.id, user_id=editor.id, role="editor")

    response = client.patch("/writers/handbook/settings", json={"name": "Hijacked"}, headers=sign_in(editor.id))
    assert response.status_code == 403

    response = client.patch("/writers/handbook/settings", json={"name": "Hijacked"})
    assert response.status_code == 302
    assert response.headers["location"].startswith("/account/sign_in?return_to=")

    response = client.patch(
        "/writers/handbook/settings",
        json={"name": "Hijacked"},
        headers={"Accept": "application/json"},
    )
    assert response.status_code == 401

    reloaded = asyncio.run(store.find_repository(owner_slug="writers", repo_slug="handbook"))
    assert reloaded.name == "Repo handbook"


def test_non_bearer_authorization_is_treated_as_sign_in_required(client: TestClient) -> None:
    response = client.get("/new", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert response.status_code == 302
    assert response.headers["location"].startswith("/account/sign_in")

    response = client.get(
        "/new",
        headers={"Authorization": "Basic dXNlcjpwYXNz", "Accept": "application/json"},
    )
    assert response.status_code == 401
    assert response.json() == {"detail": "user auth requires bearer token"}
