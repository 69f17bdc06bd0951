"""Tests for the graft-hook command line."""

import json
from unittest.mock import patch

from graft_hook.__main__ import main


def test_check_config_lists_projects(tmp_path, capsys):
    config = tmp_path / "projects.json"
    config.write_text(json.dumps({"blog": "/srv/blog", "shop": "/srv/shop"}))

    code = main(["--config", str(config), "check-config"])

    assert code == 0
    out = capsys.readouterr().out
    assert "blog\t/srv/blog" in out
    assert "shop\t/srv/shop" in out


def test_check_config_reports_duplicates(tmp_path, capsys):
    config = tmp_path / "projects.json"
    config.write_text(json.dumps({"projects": [
        {"name": "blog", "path": "/a"},
        {"name": "blog", "path": "/b"},
    ]}))

    code = main(["--config", str(config), "check-config"])

    assert code == 1
    assert "Duplicate project name" in capsys.readouterr().err


def test_serve_passes_overrides_to_run(tmp_path):
    with patch("graft_hook.main.run") as mock_run:
        code = main(["--config", str(tmp_path / "p.json"), "serve", "--port", "8123"])

    assert code == 0
    settings = mock_run.call_args.args[0]
    assert settings.port == 8123
    assert settings.config_path == str(tmp_path / "p.json")
