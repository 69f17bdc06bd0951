"""Tests for the project registry and its loader."""

import json

import pytest

from graft_hook.core.exceptions import ConfigurationError, ProjectNotFoundError
from graft_hook.deploy.registry import (
    ProjectConfig,
    ProjectRegistry,
    load_registry,
    parse_registry,
)


def _write_json(tmp_path, document, name="projects.json"):
    path = tmp_path / name
    path.write_text(json.dumps(document))
    return path


class TestProjectRegistry:
    def test_lookup_returns_registered_path(self):
        registry = ProjectRegistry([
            ProjectConfig(name="blog", path="/srv/blog"),
            ProjectConfig(name="shop", path="/srv/shop"),
        ])

        assert registry.lookup("blog").path == "/srv/blog"
        assert registry.lookup("shop").path == "/srv/shop"

    def test_lookup_unknown_raises(self):
        registry = ProjectRegistry([ProjectConfig(name="blog", path="/srv/blog")])

        with pytest.raises(ProjectNotFoundError) as exc_info:
            registry.lookup("unknown")

        assert exc_info.value.name == "unknown"
        assert registry.get("unknown") is None

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate project name"):
            ProjectRegistry([
                ProjectConfig(name="blog", path="/srv/blog"),
                ProjectConfig(name="blog", path="/srv/other"),
            ])

    def test_registry_is_read_only(self):
        registry = ProjectRegistry([ProjectConfig(name="blog", path="/srv/blog")])

        with pytest.raises(TypeError):
            registry._projects["evil"] = ProjectConfig(name="evil", path="/")

        assert "evil" not in registry
        assert registry.names() == ["blog"]

    def test_path_not_validated_at_load(self):
        registry = ProjectRegistry([ProjectConfig(name="ghost", path="/does/not/exist")])
        assert registry.lookup("ghost").path == "/does/not/exist"


class TestParseRegistry:
    def test_projects_list_format(self):
        registry = parse_registry({"projects": [{"name": "blog", "path": "/srv/blog"}]})
        assert registry.lookup("blog").path == "/srv/blog"
        assert registry.lookup("blog").remote == "origin"
        assert registry.lookup("blog").branch is None

    def test_flat_mapping_format(self):
        registry = parse_registry({"blog": "/srv/blog", "shop": "/srv/shop"})
        assert registry.names() == ["blog", "shop"]

    def test_record_mapping_format(self):
        registry = parse_registry({"blog": {"path": "/srv/blog", "branch": "release"}})
        project = registry.lookup("blog")
        assert project.path == "/srv/blog"
        assert project.branch == "release"

    def test_project_named_projects_in_flat_mapping(self):
        registry = parse_registry({"projects": "/srv/projects", "blog": "/srv/blog"})

        assert registry.lookup("projects").path == "/srv/projects"
        assert registry.names() == ["blog", "projects"]

    def test_duplicate_in_projects_list_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_registry({"projects": [
                {"name": "blog", "path": "/a"},
                {"name": "blog", "path": "/b"},
            ]})

    @pytest.mark.parametrize("document", [
        [],
        "blog",
        {"projects": [{"name": "blog"}]},
        {"projects": ["blog"]},
        {"blog": 42},
        {},
        {"projects": []},
    ])
    def test_invalid_documents(self, document):
        with pytest.raises(ConfigurationError):
            parse_registry(document)


class TestLoadRegistry:
    def test_load_json(self, tmp_path):
        path = _write_json(tmp_path, {"projects": [{"name": "blog", "path": "/srv/blog"}]})
        registry = load_registry(path)
        assert registry.lookup("blog").path == "/srv/blog"

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "projects.yaml"
        path.write_text("blog:\n  path: /srv/blog\n  compose_file: deploy.yml\n")

        registry = load_registry(path)

        assert registry.lookup("blog").compose_file == "deploy.yml"

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Failed to read"):
            load_registry(tmp_path / "missing.json")

    def test_malformed_json_is_configuration_error(self, tmp_path):
        path = tmp_path / "projects.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Malformed"):
            load_registry(path)

    def test_malformed_yaml_is_configuration_error(self, tmp_path):
        path = tmp_path / "projects.yml"
        path.write_text("blog: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Malformed"):
            load_registry(path)

    def test_duplicate_json_keys_rejected(self, tmp_path):
        path = tmp_path / "projects.json"
        path.write_text('{"blog": "/srv/a", "blog": "/srv/b"}')

        with pytest.raises(ConfigurationError, match="Duplicate key"):
            load_registry(path)

    def test_duplicate_yaml_keys_rejected(self, tmp_path):
        path = tmp_path / "projects.yaml"
        path.write_text("blog: /srv/a\nblog: /srv/b\n")

        with pytest.raises(ConfigurationError, match="duplicate key"):
            load_registry(path)

    def test_duplicate_nested_yaml_keys_rejected(self, tmp_path):
        path = tmp_path / "projects.yml"
        path.write_text("blog:\n  path: /srv/a\n  path: /srv/b\n")

        with pytest.raises(ConfigurationError):
            load_registry(path)
