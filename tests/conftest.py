"""
Pytest configuration and fixtures for graft-hook tests.
"""

from typing import List, Optional

import pytest

from graft_hook.deploy.executor import ExecutionResult
from graft_hook.deploy.registry import ProjectConfig, ProjectRegistry


ENV_CREDENTIALS = ("DEPLOY_USER", "DEPLOY_TOKEN", "GITHUB_USER", "GITHUB_TOKEN", "CONFIGPATH", "GRAFT_CONFIG_PATH")


@pytest.fixture(autouse=True)
def clear_credential_env(monkeypatch):
    """Keep credentials from the developer's shell out of every test."""
    for name in ENV_CREDENTIALS:
        monkeypatch.delenv(name, raising=False)


def ok(stdout: str = "") -> ExecutionResult:
    return ExecutionResult(returncode=0, stdout=stdout)


def failed(returncode: int = 1, stderr: str = "boom") -> ExecutionResult:
    return ExecutionResult(returncode=returncode, stderr=stderr)


class FakeExecutor:
    """Records every command and replays scripted results in order.

    A scripted entry may be an ExecutionResult or an exception instance to
    raise. Once the script runs out every command succeeds.
    """

    def __init__(self, script: Optional[List] = None):
        self.script = list(script or [])
        self.calls: List[dict] = []

    async def run(self, cwd, argv, *, env=None, input=None, timeout=None):
        self.calls.append({"cwd": str(cwd), "argv": list(argv), "env": env, "input": input})
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return ok()

    @property
    def argvs(self) -> List[List[str]]:
        return [call["argv"] for call in self.calls]


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def blog_path(tmp_path):
    path = tmp_path / "blog"
    path.mkdir()
    (path / "compose.yaml").write_text("services: {}\n")
    return path


@pytest.fixture
def registry(blog_path):
    return ProjectRegistry([ProjectConfig(name="blog", path=str(blog_path))])
