#!/usr/bin/env python3
"""Local stand-in for Supabase Auth's ``GET /auth/v1/user``.

Serves three fixed bearer tokens whose ids match the rows emitted by
``--print-seed-sql`` so a memory- or Postgres-backed API can be exercised
end to end without a Supabase project.
"""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

SEEDED_USERS: dict[str, dict[str, str]] = {
    "owner-token": {"id": "11111111-1111-1111-1111-111111111111", "slug": "ada", "name": "Ada"},
    "editor-token": {"id": "22222222-2222-2222-2222-222222222222", "slug": "grace", "name": "Grace"},
    "reader-token": {"id": "33333333-3333-3333-3333-333333333333", "slug": "linus", "name": "Linus"},
}
SEEDED_GROUP = {"id": "44444444-4444-4444-4444-444444444444", "slug": "docs-team", "name": "Docs Team"}


def user_payload_for_token(token: str) -> dict[str, object] | None:
    user = SEEDED_USERS.get(token)
    if user is None:
        return None
    return {
        "id": user["id"],
        "app_metadata": {},
        "user_metadata": {"slug": user["slug"], "name": user["name"]},
    }


def render_seed_sql() -> str:
    rows = [(user["id"], "user", user["slug"], user["name"]) for user in SEEDED_USERS.values()]
    rows.append((SEEDED_GROUP["id"], "group", SEEDED_GROUP["slug"], SEEDED_GROUP["name"]))
    values = ",\n".join(f"  ('{row_id}', '{kind}', '{slug}', '{name}')" for row_id, kind, slug, name in rows)
    editor_id = SEEDED_USERS["editor-token"]["id"]
    return (
        "insert into users (id, kind, slug, name)\nvalues\n"
        f"{values}\n"
        "on conflict (id) do nothing;\n\n"
        "insert into group_roles (group_id, user_id, role)\n"
        f"values ('{SEEDED_GROUP['id']}', '{editor_id}', 'editor')\n"
        "on conflict (group_id, user_id) do nothing;\n"
    )


class MockAuthHandler(BaseHTTPRequestHandler):
    server_version = "MockSupabaseAuth/1.0"

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return

        if self.path != "/auth/v1/user":
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return

        authorization = self.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "missing bearer token"})
            return

        user = user_payload_for_token(authorization.split(" ", maxsplit=1)[1].strip())
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
            return

        self._write_json(HTTPStatus.OK, user)

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-supabase-auth:", *args)

    def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth /auth/v1/user endpoint for BookLab.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument("--print-seed-sql", action="store_true", help="Print SQL seeding the mock users and exit")
    args = parser.parse_args()

    if args.print_seed_sql:
        print(render_seed_sql())
        return

    server = ThreadingHTTPServer((args.host, args.port), MockAuthHandler)
    print(f"mock-supabase-auth listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
