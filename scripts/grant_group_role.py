#!/usr/bin/env python3
"""Emit deterministic SQL that grants or revokes a group role."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, group_slug: str, user_slug: str, role: str | None) -> str:
    group_value = _quote_sql(group_slug.lower())
    user_value = _quote_sql(user_slug.lower())

    if role is None:
        return f"""-- BookLab group role revoke SQL
delete from group_roles
where group_id = (select id from users where slug = {group_value} and kind = 'group')
  and user_id = (select id from users where slug = {user_value} and kind = 'user');
"""

    role_value = _quote_sql(role)
    return f"""-- BookLab group role grant SQL
-- Run against the BookLab database (psql or equivalent privileged session).

insert into group_roles (group_id, user_id, role)
select g.id, u.id, {role_value}
from users g, users u
where g.slug = {group_value} and g.kind = 'group'
  and u.slug = {user_value} and u.kind = 'user'
on conflict (group_id, user_id) do update set role = excluded.role;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant a BookLab group role.")
    parser.add_argument("--group", required=True, help="Group slug")
    parser.add_argument("--user", required=True, help="User slug")
    action_group = parser.add_mutually_exclusive_group()
    action_group.add_argument(
        "--role",
        choices=["editor", "admin"],
        default="editor",
        help="Role to grant within the group",
    )
    action_group.add_argument("--revoke", action="store_true", help="Remove the user's role instead")
    args = parser.parse_args()

    print(
        render_sql(
            group_slug=args.group,
            user_slug=args.user,
            role=None if args.revoke else args.role,
        )
    )


if __name__ == "__main__":
    main()
