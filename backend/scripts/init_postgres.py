"""
Check that the auth service database is reachable and migrated.
Run before starting the API: python scripts/init_postgres.py

Creating the role and database is a one-off DBA step:

  sudo -u postgres psql
  CREATE USER xloop WITH PASSWORD 'xloop';
  CREATE DATABASE xloop_auth OWNER xloop;
  GRANT ALL PRIVILEGES ON DATABASE xloop_auth TO xloop;
  \q
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.database import current_revision, engine, missing_tables


def main():
    try:
        with engine.connect() as conn:
            server = conn.execute(text("SELECT version()")).scalar() if engine.dialect.name == "postgresql" else engine.dialect.name
        revision = current_revision()
        missing = missing_tables()
    except SQLAlchemyError as e:
        print(f"Cannot connect to {settings.POSTGRES_DB} as {settings.POSTGRES_USER}: {e}")
        sys.exit(1)

    print(f"Connected: {server}")
    print(f"Alembic revision: {revision or 'none'}")
    if missing:
        print(f"Missing tables: {', '.join(missing)}")
        print("Run: alembic upgrade head, then python scripts/seed_rbac.py")
        sys.exit(2)
    print("Schema OK.")


if __name__ == "__main__":
    main()
