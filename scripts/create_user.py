#!/usr/bin/env python3
"""
Create a LevelQuiz account.

There is no public sign-up; admins and students are provisioned here:

    python scripts/create_user.py --role admin --name "Quiz Admin" --email admin@example.com
"""

import argparse
import getpass
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

from app.security import hash_password  # noqa: E402
from models import USER_ROLES, create_user, init_db  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a LevelQuiz user account.")
    parser.add_argument("--role", required=True, choices=sorted(USER_ROLES))
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument(
        "--password",
        help="Password for the account (prompted for when omitted).",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    load_dotenv(ROOT_DIR / ".env")
    args = parse_args(argv)

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("❌ Password must be at least 8 characters.")
        return 1

    init_db()
    try:
        user = create_user(
            name=args.name.strip(),
            email=args.email.strip(),
            password_hash=hash_password(password),
            role=args.role,
        )
    except ValueError as exc:
        print(f"❌ {exc}")
        return 1

    print(f"✅ Created {user.role} account #{user.id} for {user.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
