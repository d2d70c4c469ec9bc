"""
Create an Admin account, or promote an existing one.

Signup only ever creates Members, so the first Admin has to come from here.

Usage:
  python -m scripts.create_admin --email admin@example.com --password '...' --name Admin
"""
import argparse
from contextlib import closing
from typing import Optional, Sequence

from portal import crud
from portal.db import SessionLocal, init_db
from portal.errors import DuplicateEmail
from portal.models import Role


def create_admin(db, email: str, password: str, name: str, surname: str = "") -> int:
    try:
        user_id = crud.signup(db, name, surname, email, "", password)
    except DuplicateEmail:
        user_id = crud.get_user_by_email(db, email).userid
    crud.update_user_role(db, user_id, Role.ADMIN)
    return user_id


def main(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Admin")
    parser.add_argument("--surname", default="")
    args = parser.parse_args(argv)

    init_db()
    with closing(SessionLocal()) as db:
        user_id = create_admin(db, args.email, args.password, args.name, args.surname)
    print(f"Admin ready: {args.email} (id {user_id})")


if __name__ == "__main__":
    main()
