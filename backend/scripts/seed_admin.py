"""Create the first system administrator.

Usage:
    ADMIN_EMAIL=admin@dms.com ADMIN_PASSWORD=... python scripts/seed_admin.py
    python scripts/seed_admin.py --email admin@dms.com --password ... --name "System Administrator"
"""
import argparse
import os
import sys
from pathlib import Path

# backend/scripts/seed_admin.py -> parents[1] == backend/
sys.path.append(str(Path(__file__).resolve().parents[1]))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the first system administrator")
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"))
    parser.add_argument("--name", default=os.environ.get("ADMIN_NAME", "System Administrator"))
    args = parser.parse_args(argv)

    if not args.email or not args.password:
        print("[FAIL] --email/--password (or ADMIN_EMAIL/ADMIN_PASSWORD) required")
        return 1
    if len(args.password) < 12:
        print("[FAIL] Password must be at least 12 characters")
        return 1

    from dms.auth.errors import AuthError
    from dms.auth.service import bootstrap_admin
    from dms.auth.store import SqlAlchemyCredentialStore
    from dms.db.init_db import init_db
    from dms.db.session import SessionLocal

    init_db()
    db = SessionLocal()
    try:
        profile = bootstrap_admin(
            SqlAlchemyCredentialStore(db),
            email=args.email,
            password=args.password,
            name=args.name,
        )
    except AuthError as exc:
        print(f"[FAIL] {exc.message}")
        return 1
    finally:
        db.close()

    print(f"[OK] Created system admin {profile.email} (id: {profile.id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
