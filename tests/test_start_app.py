import pytest

import start_app
from start_app import main


def test_failed_migration_exits(monkeypatch, capsys):
    async def broken(dsn=None, revision="head"):
        raise RuntimeError("database unreachable")

    monkeypatch.setattr("invoicing.app.db.migrate.run_migrations", broken)
    monkeypatch.setattr(start_app, "uvicorn", type("U", (), {"run": staticmethod(lambda *a, **k: None)}))

    with pytest.raises(SystemExit) as excinfo:
        main([])

    assert excinfo.value.code == 1
    assert "database unreachable" in capsys.readouterr().err


def test_skip_db_migrations(monkeypatch):
    async def fail(*args, **kwargs):
        raise AssertionError("migrations should be skipped")

    called = {}

    def fake_uvicorn_run(app, **kwargs):
        called["app"] = app

    monkeypatch.setattr("invoicing.app.db.migrate.run_migrations", fail)
    monkeypatch.setattr(start_app, "uvicorn", type("U", (), {"run": staticmethod(fake_uvicorn_run)}))
    main(["--skip-db-migrations"])
    assert called["app"] == "invoicing.app.main:app"
