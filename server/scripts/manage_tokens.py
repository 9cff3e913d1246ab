#!/usr/bin/env python3
"""
Token and account management CLI for the Jokes API.

Usage:
  python -m scripts.manage_tokens create-superuser --email EMAIL --name NAME [--password PASSWORD]
  python -m scripts.manage_tokens create --user EMAIL [--name NAME] [--expires DAYS]
  python -m scripts.manage_tokens list [--user EMAIL]
  python -m scripts.manage_tokens revoke --token-id ID
  python -m scripts.manage_tokens revoke-user --user EMAIL

Reads JOKES_DATABASE_URL (or .env) like the server does.
"""

import argparse
import getpass
import sys

from jokes_api.database import (
    create_user_token,
    get_db,
    list_user_tokens,
    revoke_token,
    revoke_user_tokens,
)
from jokes_api.migrations import initialize_database
from jokes_api.roles import Role
from jokes_api.tools.users import email_taken, insert_user, set_roles


def _user_id_for(cursor, email):
    cursor.execute("SELECT id FROM users WHERE email = ? AND deleted_at IS NULL", (email.strip().lower(),))
    row = cursor.fetchone()
    return row[0] if row else None


# ==========================================================================
# Commands
# ==========================================================================

def cmd_create_superuser(args):
    """Bootstrap an account with the superuser role (creates the schema if needed)."""
    email = args.email.strip().lower()
    password = args.password or getpass.getpass("Password: ")
    if len(password) < 6:
        print("Error: password must be at least 6 characters.")
        sys.exit(1)

    with get_db() as cursor:
        initialize_database(cursor)
        if email_taken(cursor, email):
            user_id = _user_id_for(cursor, email)
            if user_id is None:
                print(f"Error: {email} belongs to a deleted account.")
                sys.exit(1)
            set_roles(cursor, user_id, [Role.SUPERUSER.value])
            status = "existing account promoted"
        else:
            user_id = insert_user(cursor, args.name, email, password, roles=[Role.SUPERUSER.value])
            status = "created"

    print(f"\n=== Superuser {status} ===")
    print(f"User:  {email} (id {user_id})")


def cmd_create(args):
    """Issue a token for an existing user."""
    with get_db() as cursor:
        user_id = _user_id_for(cursor, args.user)
        if user_id is None:
            print(f"Error: User '{args.user}' not found.")
            sys.exit(1)
        token = create_user_token(cursor, user_id, args.name, expires_days=args.expires)

    print(f"\n=== Token Created ===")
    print(f"User:       {args.user}")
    print(f"Expires:    {token['expires_at']}")
    print()
    print(f"TOKEN (save this -- it will NOT be shown again):")
    print(f"  {token['token']}")
    print()
    print(f"Use as:  Authorization: Bearer {token['token']}")


def cmd_list(args):
    """List tokens with their owners."""
    with get_db() as cursor:
        user_id = None
        if args.user:
            user_id = _user_id_for(cursor, args.user)
            if user_id is None:
                print(f"Error: User '{args.user}' not found.")
                sys.exit(1)
        tokens = list_user_tokens(cursor, user_id)

    if not tokens:
        print("No tokens found.")
        return

    print(f"\n{'ID':<6} {'User':<32} {'Name':<12} {'Created':<26} {'Last used':<26} {'Expires'}")
    print("-" * 120)
    for t in tokens:
        print(
            f"{t['id']:<6} {t['email']:<32} {t['name']:<12} {t['created_at']:<26} "
            f"{t['last_used_at'] or '-':<26} {t['expires_at'] or 'never'}"
        )


def cmd_revoke(args):
    """Revoke one token by id."""
    with get_db() as cursor:
        revoked = revoke_token(cursor, args.token_id)
    if not revoked:
        print(f"Error: Token {args.token_id} not found.")
        sys.exit(1)
    print(f"Token {args.token_id} revoked.")


def cmd_revoke_user(args):
    """Revoke every token of one user."""
    with get_db() as cursor:
        user_id = _user_id_for(cursor, args.user)
        if user_id is None:
            print(f"Error: User '{args.user}' not found.")
            sys.exit(1)
        count = revoke_user_tokens(cursor, user_id)
    print(f"Revoked {count} token(s) for {args.user}.")


def main():
    parser = argparse.ArgumentParser(description="Jokes API token management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("create-superuser", help="Create or promote a superuser account")
    p.add_argument("--email", required=True)
    p.add_argument("--name", default="Superuser")
    p.add_argument("--password", help="Prompted for when omitted")
    p.set_defaults(func=cmd_create_superuser)

    p = subparsers.add_parser("create", help="Issue a token for a user")
    p.add_argument("--user", required=True, help="User email")
    p.add_argument("--name", default="cli", help="Token label")
    p.add_argument("--expires", type=int, default=None, help="Days until expiry (default: settings)")
    p.set_defaults(func=cmd_create)

    p = subparsers.add_parser("list", help="List tokens")
    p.add_argument("--user", help="Only this user's tokens")
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("revoke", help="Revoke a token by id")
    p.add_argument("--token-id", type=int, required=True)
    p.set_defaults(func=cmd_revoke)

    p = subparsers.add_parser("revoke-user", help="Revoke all tokens of a user")
    p.add_argument("--user", required=True)
    p.set_defaults(func=cmd_revoke_user)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
