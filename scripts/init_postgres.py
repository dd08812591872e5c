"""
Initialize the database schema and promote bootstrap admins
Creates the profiles, property_history and webhook_debug tables, then gives the
admin role to any existing profile whose e-mail is listed in ADMIN_EMAILS
"""
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func

from core.config import ADMIN_EMAILS
from core.database import SessionLocal, init_db
from models.profile import Profile


def promote_admins(db, emails) -> int:
    """Set role=admin on profiles matching the given e-mails; returns how many changed."""
    emails = [e.strip().lower() for e in (emails or []) if e and e.strip()]
    if not emails:
        return 0
    changed = 0
    for prof in db.query(Profile).filter(func.lower(Profile.email).in_(emails)).all():
        if (prof.role or "").lower() not in ("admin", "administrator"):
            prof.role = "admin"
            changed += 1
    db.commit()
    return changed


def init_database():
    """Create all tables in the database"""
    print("Creating tables...")

    try:
        init_db()
        print("✓ Tables created successfully!")
        print("\nCreated tables:")
        print("  - profiles")
        print("  - property_history")
        print("  - webhook_debug")
    except Exception as e:
        print(f"✗ Error creating tables: {e}")
        sys.exit(1)

    db = SessionLocal()
    try:
        n = promote_admins(db, ADMIN_EMAILS)
        print(f"✓ Promoted {n} profile(s) to admin")
    finally:
        db.close()


if __name__ == "__main__":
    init_database()
