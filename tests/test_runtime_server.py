from __future__ import annotations

from types import SimpleNamespace

import src.runtime_server as runtime_server


def test_worker_count_defaults_to_single_process(monkeypatch):
    monkeypatch.delenv("UVICORN_WORKERS", raising=False)
    assert runtime_server._worker_count() == 1
    monkeypatch.setenv("UVICORN_WORKERS", "3")
    assert runtime_server._worker_count() == 3
    monkeypatch.setenv("UVICORN_WORKERS", "invalid")
    assert runtime_server._worker_count() == 1
    monkeypatch.setenv("UVICORN_WORKERS", "0")
    assert runtime_server._worker_count() == 1


def test_main_invokes_uvicorn_with_app_factory(monkeypatch):
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.delenv("FASTAPI_APP", raising=False)
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.setattr(runtime_server, "_worker_count", lambda: 2)
    recorded: dict[str, object] = {}

    def _fake_run(app, **kwargs):
        recorded["app"] = app
        recorded.update(kwargs)

    monkeypatch.setattr(runtime_server, "uvicorn", SimpleNamespace(run=_fake_run))
    runtime_server.main()
    assert recorded["app"] == "src.main:create_app"
    assert recorded["host"] == "0.0.0.0"
    assert recorded["port"] == 9090
    assert recorded["workers"] == 2
    assert recorded["factory"] is True
