"""HTTP tests for the webhook, health and project endpoints."""

import signal
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeExecutor, failed, ok
from graft_hook.core.config import Settings
from graft_hook.core.exceptions import ConfigurationError, GraftHookError, ProjectNotFoundError
from graft_hook.main import create_app


def _settings(tmp_path, **overrides):
    values = {
        "config_path": str(tmp_path / "projects.json"),
        "default_user": None,
        "default_token": None,
        "log_format": "console",
        "metrics_enabled": True,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def client(tmp_path, registry, executor):
    app = create_app(_settings(tmp_path), registry=registry, executor=executor)
    with TestClient(app) as client:
        yield client


def test_repo_webhook_success(client, executor):
    r = client.post("/webhook", json={"project": "blog", "type": "repo", "user": "alice", "githubtoken": "tok"})

    assert r.status_code == 200
    assert r.text == "source synced and containers rebuilt"
    assert r.headers["content-type"].startswith("text/plain")
    assert "X-Request-ID" in r.headers
    assert len(executor.calls) == 2


def test_failures_return_200_by_default(client, executor):
    r = client.post("/webhook", json={"project": "unknown", "type": "repo", "user": "a", "githubtoken": "t"})

    assert r.status_code == 200
    assert r.text == "Project not found: unknown"
    assert executor.calls == []


def test_missing_credentials_message(client, executor):
    r = client.post("/webhook", json={"project": "blog", "type": "image"})

    assert r.status_code == 200
    assert r.text.startswith("Missing credentials")
    assert executor.calls == []


def test_non_json_body_is_invalid_request(client):
    r = client.post("/webhook", content=b"definitely not json", headers={"content-type": "application/json"})

    assert r.status_code == 200
    assert r.text.startswith("Invalid request")


def test_stderr_is_not_echoed_to_caller(tmp_path, registry):
    executor = FakeExecutor([failed(1, "remote: token ghp_leaky rejected")])
    app = create_app(_settings(tmp_path), registry=registry, executor=executor)

    with TestClient(app) as client:
        r = client.post("/webhook", json={"project": "blog", "type": "repo", "user": "a", "githubtoken": "t"})

    assert "ghp_leaky" not in r.text
    assert r.text.startswith("Source sync failed")


@pytest.mark.parametrize("body,script,expected", [
    ({"project": "blog"}, [], 400),
    ({"project": "nope", "type": "repo", "user": "a", "token": "t"}, [], 404),
    ({"project": "blog", "type": "image"}, [], 401),
    ({"project": "blog", "type": "repo", "user": "a", "token": "t"}, [failed()], 502),
    ({"project": "blog", "type": "image", "user": "a", "token": "t"}, [failed()], 502),
    ({"project": "blog", "type": "image", "user": "a", "token": "t"}, [ok(), failed()], 502),
    ({"project": "blog", "type": "image", "user": "a", "token": "t"}, [], 200),
])
def test_strict_status_codes(tmp_path, registry, body, script, expected):
    app = create_app(
        _settings(tmp_path, strict_status_codes=True),
        registry=registry,
        executor=FakeExecutor(script),
    )

    with TestClient(app) as client:
        r = client.post("/webhook", json=body)

    assert r.status_code == expected


def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "healthy"
    assert data["projects"] == 1


def test_projects_lists_names_only(client, blog_path):
    r = client.get("/projects")

    assert r.status_code == 200
    assert r.json() == ["blog"]
    assert str(blog_path) not in r.text


def test_metrics_count_deployments(client):
    client.post("/webhook", json={"project": "blog", "type": "image", "user": "a", "token": "t"})

    r = client.get("/metrics/")

    assert r.status_code == 200
    assert "graft_hook_deployments_total" in r.text


def test_create_app_loads_registry_from_config_path(tmp_path, blog_path):
    config = tmp_path / "projects.json"
    config.write_text('{"projects": [{"name": "blog", "path": "%s"}]}' % blog_path)

    app = create_app(_settings(tmp_path))

    assert app.state.dispatcher.registry.names() == ["blog"]


def test_create_app_refuses_missing_config(tmp_path):
    with pytest.raises(ConfigurationError):
        create_app(_settings(tmp_path, config_path=str(tmp_path / "absent.json")))


def test_run_exits_on_configuration_error(tmp_path):
    from graft_hook.main import run

    with pytest.raises(SystemExit) as exc_info:
        run(_settings(tmp_path, config_path=str(tmp_path / "absent.json")))

    assert exc_info.value.code == 1


@pytest.mark.parametrize("error", [
    GraftHookError("dispatcher bug", code="dispatch_bug"),
    ProjectNotFoundError("blog"),
])
def test_escaped_dispatcher_error_is_json_500(client, monkeypatch, error):
    async def explode(body):
        raise error

    monkeypatch.setattr(client.app.state.dispatcher, "dispatch", explode)

    r = client.post("/webhook", json={"project": "blog", "type": "repo"})

    assert r.status_code == 500
    data = r.json()
    assert data["error"] == type(error).__name__
    assert data["code"] == error.code


def test_run_leaves_signal_handling_to_uvicorn(tmp_path):
    before = signal.getsignal(signal.SIGTERM)

    with patch("graft_hook.main.create_app") as mock_create_app, \
            patch("graft_hook.main.uvicorn.Server") as mock_server:
        from graft_hook.main import run

        run(_settings(tmp_path, port=8123))

    assert signal.getsignal(signal.SIGTERM) is before
    config = mock_server.call_args.args[0]
    assert config.app is mock_create_app.return_value
    assert config.port == 8123
    mock_server.return_value.run.assert_called_once_with()
