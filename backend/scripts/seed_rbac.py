"""
Install the default roles, permissions and bootstrap admin.
Run after migrations: python scripts/seed_rbac.py
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.database import SessionLocal
from app.services.bootstrap import ensure_admin_user
from app.services.rbac_seed import seed_defaults


def main():
    db = SessionLocal()
    try:
        created = seed_defaults(db)
        print(
            f"Seeded {created['roles']} roles, {created['permissions']} permissions, "
            f"{created['role_permissions']} grants."
        )
        admin = ensure_admin_user(db)
        print(f"Admin account: {admin.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
