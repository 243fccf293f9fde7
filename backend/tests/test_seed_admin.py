import importlib.util
from pathlib import Path

from dms.auth.roles import Role
from dms.auth.store import SqlAlchemyCredentialStore

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "seed_admin.py"


def _seed_admin():
    spec = importlib.util.spec_from_file_location("seed_admin", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_seed_admin_creates_admin_once(db, capsys):
    seed = _seed_admin()
    argv = ["--email", "Root@Example.com", "--password", "a-long-passphrase"]

    assert seed.main(argv) == 0
    assert "[OK]" in capsys.readouterr().out

    store = SqlAlchemyCredentialStore(db)
    admin = store.find_user_by_email("root@example.com")
    assert admin.role == Role.SYSTEM_ADMIN.value
    assert admin.tenant_id is None

    assert seed.main(argv) == 1
    assert "Admin user already exists" in capsys.readouterr().out


def test_seed_admin_rejects_short_password(db, capsys):
    assert _seed_admin().main(["--email", "root@example.com", "--password", "short"]) == 1
    assert "at least 12" in capsys.readouterr().out
