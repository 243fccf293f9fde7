"""Migration sanity checks for CI.

Fails when the revision graph has more than one head, or when a database
upgraded to head does not match the SQLAlchemy models.

Usage:
    python scripts/check_migrations.py                    # uses DATABASE_URL
    python scripts/check_migrations.py --url sqlite:///tmp/check.db
"""
import argparse
import sys
from pathlib import Path

from alembic import command
from alembic.autogenerate import compare_metadata
from alembic.config import Config
from alembic.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine

BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(BACKEND_DIR))


def alembic_config(url: str | None = None) -> Config:
    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.attributes["configure_logger"] = False
    if url:
        cfg.cmd_opts = argparse.Namespace(x=[f"url={url}"])
    return cfg


def heads(cfg: Config) -> list[str]:
    return list(ScriptDirectory.from_config(cfg).get_heads())


def schema_diff(url: str) -> list:
    """Upgrade ``url`` to head and return the autogenerate diff against the models."""
    import dms.db.models  # noqa: F401
    from dms.db.base import Base

    command.upgrade(alembic_config(url), "head")
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            return compare_metadata(MigrationContext.configure(conn), Base.metadata)
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check Alembic heads and schema drift")
    parser.add_argument("--url", default=None)
    args = parser.parse_args(argv)

    found = heads(alembic_config())
    if len(found) != 1:
        print(f"[FAIL] Alembic heads={len(found)} -> {found}")
        return 1
    print(f"[OK] Alembic single head: {found[0]}")

    if args.url is None:
        from dms.core.config import settings

        args.url = settings.DATABASE_URL

    diff = schema_diff(args.url)
    if diff:
        for entry in diff:
            print(f"[DRIFT] {entry}")
        print("[FAIL] Models and migrations differ. Generate and commit a migration.")
        return 1

    print("[OK] No schema drift")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
