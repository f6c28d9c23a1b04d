"""
Central database initialization

Creates the portal tables, the Admin/Manager/User roles and a first
administrator account. Safe to rerun: existing roles and users are kept.

    python scripts/init_db.py --username admin --password 'change-me'
"""
import argparse
import sys
import os
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gridportal.database import SessionLocal, Base, engine
from gridportal.models import User, Role
from gridportal.core.rbac import initialize_rbac


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create grid portal tables, roles and the first admin user")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--password", default="admin123")
    parser.add_argument("--email", default="admin@example.com")
    return parser


def ensure_admin(db, username: str, password: str, email: str) -> bool:
    """Create the administrator if missing. Returns True when a user was created."""
    if db.query(User).filter(User.username == username).first():
        return False

    admin = User(
        username=username,
        email=email,
        first_name="System",
        last_name="Administrator",
        hashed_password=User.hash_password(password),
        is_active=True
    )
    admin_role = db.query(Role).filter(Role.name == "Admin").first()
    if admin_role:
        admin.roles = [admin_role]
    db.add(admin)
    db.commit()
    return True


def init_database(username: str, password: str, email: str) -> bool:
    print(f"Connecting to {engine.url.render_as_string(hide_password=True)}")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        print(f"Database not reachable: {e}")
        return False

    Base.metadata.create_all(bind=engine)
    print("✓ Tables ready")

    db = SessionLocal()
    try:
        initialize_rbac(db)
        print("✓ Roles ready: Admin, Manager, User")

        if ensure_admin(db, username, password, email):
            print(f"✓ Admin user '{username}' created")
            print("IMPORTANT: Change this password immediately in production!")
        else:
            print(f"✓ Admin user '{username}' already exists")
        return True
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    args = build_parser().parse_args()
    sys.exit(0 if init_database(args.username, args.password, args.email) else 1)
