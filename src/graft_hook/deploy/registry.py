"""Project registry: project name to deployment directory, loaded once at startup."""

from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog
import yaml
from yaml.constructor import ConstructorError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from graft_hook.core.exceptions import ConfigurationError, ProjectNotFoundError

logger = structlog.get_logger()


class ProjectConfig(BaseModel):
    """One deployable project.

    `path` is not checked here; a missing directory surfaces when the first
    command is spawned in it.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1, description="Directory holding the compose definition")
    branch: Optional[str] = Field(None, description="Branch to pull; falls back to the default branch")
    remote: str = Field("origin", description="Git remote to pull from")
    compose_file: Optional[str] = Field(None, description="Compose file passed with -f")


class ProjectRegistry:
    """Read-only name -> ProjectConfig mapping shared by all requests."""

    def __init__(self, projects: Iterable[ProjectConfig]):
        table: Dict[str, ProjectConfig] = {}
        for project in projects:
            if project.name in table:
                raise ConfigurationError(
                    f"Duplicate project name in configuration: {project.name}",
                    code="duplicate_project",
                )
            table[project.name] = project
        self._projects: Mapping[str, ProjectConfig] = MappingProxyType(table)

    def lookup(self, name: str) -> ProjectConfig:
        try:
            return self._projects[name]
        except KeyError:
            raise ProjectNotFoundError(name) from None

    def get(self, name: str) -> Optional[ProjectConfig]:
        return self._projects.get(name)

    def names(self) -> List[str]:
        return sorted(self._projects)

    def __contains__(self, name: object) -> bool:
        return name in self._projects

    def __len__(self) -> int:
        return len(self._projects)

    def __iter__(self):
        return iter(self._projects.values())


def _reject_duplicate_json_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    """object_pairs_hook for json.loads that refuses repeated keys."""
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"Duplicate key in configuration: {key}")
        result[key] = value
    return result


class UniqueKeySafeLoader(yaml.SafeLoader):
    """SafeLoader that refuses repeated mapping keys instead of keeping the last."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                # Unhashable keys are rejected by the base constructor
                continue
            if duplicate:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _project_entries(document: Any) -> List[Dict[str, Any]]:
    """Normalize the supported document shapes into a list of project records.

    A top-level `projects` key holding a list selects the record-list shape;
    any other value under it is an ordinary project named "projects".
    """
    if isinstance(document, dict) and isinstance(document.get("projects"), list):
        projects = document["projects"]
        entries = []
        for item in projects:
            if not isinstance(item, dict):
                raise ConfigurationError(f"Invalid project record: {item!r}")
            entries.append(item)
        return entries

    if isinstance(document, dict):
        entries = []
        for name, value in document.items():
            if isinstance(value, str):
                entries.append({"name": name, "path": value})
            elif isinstance(value, dict):
                entries.append({**value, "name": name})
            else:
                raise ConfigurationError(f"Invalid entry for project {name!r}: expected path or record")
        return entries

    raise ConfigurationError("Project configuration must be a JSON/YAML object")


def parse_registry(document: Any) -> ProjectRegistry:
    """Build a registry from an already-decoded configuration document."""
    projects = []
    for entry in _project_entries(document):
        try:
            projects.append(ProjectConfig(**entry))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid project record {entry!r}: {exc}") from exc

    registry = ProjectRegistry(projects)
    if not len(registry):
        raise ConfigurationError("Project configuration defines no projects")
    return registry


def load_registry(config_path: str | Path) -> ProjectRegistry:
    """Read and parse the project file. Any failure is a ConfigurationError."""
    path = Path(config_path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Failed to read project configuration {path}: {exc}") from exc

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            document = yaml.load(content, Loader=UniqueKeySafeLoader)
        else:
            document = json.loads(content, object_pairs_hook=_reject_duplicate_json_keys)
    except (ValueError, yaml.YAMLError) as exc:
        # ValueError covers json.JSONDecodeError and repeated JSON keys
        raise ConfigurationError(f"Malformed project configuration {path}: {exc}") from exc

    registry = parse_registry(document)
    logger.info("Project registry loaded", config_path=str(path), projects=registry.names())
    return registry
