"""
Check the PostgreSQL connection and seed default roles and permissions.
Run after `alembic upgrade head`: python scripts/init_db.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER inventory WITH PASSWORD 'inventory';
  CREATE DATABASE inventory_db OWNER inventory;
  GRANT ALL PRIVILEGES ON DATABASE inventory_db TO inventory;
  \q
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.core.database import session_scope
from app.services.rbac_seed import seed_rbac


def main():
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("DATABASE_URL is not PostgreSQL. Skipping.")
        return
    with session_scope() as db:
        try:
            db.execute(text("SELECT 1"))
        except OperationalError as e:
            print(f"Cannot connect to PostgreSQL: {e}")
            print("\nCreate database first:")
            print("  psql -U postgres -c \"CREATE USER inventory WITH PASSWORD 'inventory';\"")
            print("  psql -U postgres -c \"CREATE DATABASE inventory_db OWNER inventory;\"")
            print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE inventory_db TO inventory;\"")
            sys.exit(1)
        created = seed_rbac(db)
    print(f"PostgreSQL connection OK. Seeded: {created}")


if __name__ == "__main__":
    main()
