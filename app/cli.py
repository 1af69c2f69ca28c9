# app/cli.py
"""
Offline user administration for user.json.

Runs as a separate process: a server watching the same file picks the
change up on its next login attempt (and drops all sessions).
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from app.di import USERS_FILE
from app.errors import StoreIOError
from app.services.users import UserStore


class CliError(Exception):
    pass


def _store(data_dir: Path) -> UserStore:
    store = UserStore(data_dir / USERS_FILE)
    store.load()
    return store


def list_users(data_dir: Path) -> List[str]:
    return [u.username for u in _store(data_dir).list_users()]


def add_user(data_dir: Path, username: str, password: str) -> None:
    store = _store(data_dir)
    if store.get_user(username) is not None:
        raise CliError(f"user '{username}' already exists")
    store.add_user(username, password)


def remove_user(data_dir: Path, username: str) -> None:
    store = _store(data_dir)
    if store.get_user(username) is None:
        raise CliError(f"user '{username}' does not exist")
    store.remove_user(username)


def change_user(data_dir: Path, username: str, password: str) -> None:
    store = _store(data_dir)
    if store.get_user(username) is None:
        raise CliError(f"user '{username}' does not exist")
    store.add_user(username, password)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="treeshare-users", description="Manage treeshare users")
    p.add_argument("--dir", default="./.user", type=Path, help="User data directory")
    p.add_argument("--username", default="", help="Username")
    p.add_argument("--password", default="", help="Password")
    action = p.add_mutually_exclusive_group()
    action.add_argument("--list", action="store_true", help="List all users")
    action.add_argument("--add", action="store_true", help="Add a new user")
    action.add_argument("--remove", action="store_true", help="Remove a user")
    action.add_argument("--change", action="store_true", help="Change user password")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.list:
            names = list_users(args.dir)
            if not names:
                print("No users found")
            else:
                print("Users:")
                for name in names:
                    print(f"  - {name}")
            return 0

        if args.add or args.change:
            flag = "--add" if args.add else "--change"
            if not args.username or not args.password:
                raise CliError(f"--username and --password are required for {flag}")
            if args.add:
                add_user(args.dir, args.username, args.password)
                print(f"User '{args.username}' added successfully")
            else:
                change_user(args.dir, args.username, args.password)
                print(f"User '{args.username}' password changed successfully")
            return 0

        if args.remove:
            if not args.username:
                raise CliError("--username is required for --remove")
            remove_user(args.dir, args.username)
            print(f"User '{args.username}' removed successfully")
            return 0
    except (CliError, StoreIOError) as e:
        print(f"Error: {e}")
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
