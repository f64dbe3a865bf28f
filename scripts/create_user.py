#!/usr/bin/env python3
"""
Legt einen Benutzer an oder setzt das Passwort eines bestehenden Benutzers neu.
Wird nach der ersten Migration verwendet, um den Admin für den Import anzulegen.

Beispiele (im Projektverzeichnis):
  .venv/bin/python scripts/create_user.py --email admin@kita.example --name "Kita Admin" --role admin
  .venv/bin/python scripts/create_user.py --email admin@kita.example --password "neues Passwort"

DATABASE_URL muss gesetzt sein (oder in .env stehen).
"""
import argparse
import getpass
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.kita_fees.database import SessionLocal
from src.kita_fees.models.user import User, UserRole
from src.kita_fees.services.password import PasswordPolicyError, check_password_policy, hash_password


def upsert_user(db: Session, email: str, password: str, name: str = None, role: UserRole = UserRole.ADMIN):
    """Create the user, or update password (and name/role when given) of an existing one."""
    email = email.strip().lower()
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    created = user is None
    if created:
        user = User(email=email, name=name or email, role=role, is_active=True)
        db.add(user)
    else:
        if name:
            user.name = name
        user.role = role
    user.password_hash = hash_password(password)
    db.commit()
    return user, created


def read_password() -> str:
    password = getpass.getpass("Neues Passwort: ")
    if password != getpass.getpass("Passwort wiederholen: "):
        print("Fehler: Die Passwörter stimmen nicht überein.", file=sys.stderr)
        sys.exit(1)
    return password


def main():
    parser = argparse.ArgumentParser(description="Benutzer anlegen oder Passwort neu setzen")
    parser.add_argument("--email", required=True, help="E-Mail-Adresse des Benutzers")
    parser.add_argument("--name", default=None, help="Anzeigename (Standard: E-Mail-Adresse)")
    parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.ADMIN.value)
    parser.add_argument("--password", default=None, help="Passwort (ohne Angabe interaktive Eingabe)")
    args = parser.parse_args()

    password = args.password or read_password()
    try:
        check_password_policy(password)
    except PasswordPolicyError as e:
        print(f"Fehler: {e}", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        user, created = upsert_user(db, args.email, password, args.name, UserRole(args.role))
        verb = "angelegt" if created else "aktualisiert"
        print(f"Fertig: {user.email} ({user.role.value}) {verb}.")
    except SQLAlchemyError as e:
        db.rollback()
        print(f"Fehler: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
