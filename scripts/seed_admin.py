import argparse

from dotenv import load_dotenv

from app.db import SessionLocal
from app.models.admin import Admin, AdminRole
from app.models.user import User, UserRole
from app.services.permissions import default_permissions


def parse_args():
    parser = argparse.ArgumentParser(description="Seed an admin record.")
    parser.add_argument("--user-id", required=True, help="Auth provider identity.")
    parser.add_argument(
        "--role",
        choices=[role.value for role in AdminRole],
        default=AdminRole.super_admin.value,
        help="Admin role to grant.",
    )
    parser.add_argument("--email", help="Email for the matching local user.")
    parser.add_argument("--name", help="Display name for the matching local user.")
    return parser.parse_args()


def _ensure_user(db, token_identifier, email, name):
    user = db.query(User).filter(User.token_identifier == token_identifier).first()
    if not user:
        user = User(
            token_identifier=token_identifier,
            email=email,
            name=name,
            role=UserRole.admin,
            is_active=True,
        )
        db.add(user)
    else:
        if email and not user.email:
            user.email = email
        if name and not user.name:
            user.name = name
    return user


def _ensure_admin(db, user_id, role):
    admin = db.query(Admin).filter(Admin.user_id == user_id).first()
    if not admin:
        admin = Admin(
            user_id=user_id,
            role=role,
            permissions=default_permissions(role.value),
            is_active=True,
            created_by="seed",
        )
        db.add(admin)
    else:
        if not admin.is_active:
            admin.is_active = True
        admin.role = role
        granted = set(admin.permissions or [])
        admin.permissions = sorted(granted | set(default_permissions(role.value)))
    return admin


def main():
    load_dotenv()
    args = parse_args()
    role = AdminRole(args.role)
    db = SessionLocal()
    try:
        if args.email or args.name:
            _ensure_user(db, args.user_id, args.email, args.name)
        admin = _ensure_admin(db, args.user_id, role)
        db.commit()
        print(f"Admin {admin.user_id} seeded with role {admin.role.value}.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
