"""
Manifest — the project's package.json, ``quickJs`` section.

    {
      "name": "myapp",
      "quickJs": {
        "input": "app/index.mjs",
        "optimization": true,
        "modules": {"hello": "native/hello.c"}
      }
    }
"""
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from qjs_builder.errors import ManifestError

MANIFEST_NAME = "package.json"
DEFAULT_INPUT = "app/index.mjs"
DEFAULT_APP_NAME = "app"

_C_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ModuleRegistration(BaseModel):
    """A native module exposed to scripts as ``import * as x from '<name>'``."""
    model_config = ConfigDict(frozen=True)

    name: str
    source_path: Path

    @field_validator("name")
    @classmethod
    def _valid_identifier(cls, v: str) -> str:
        if not _C_IDENTIFIER.match(v):
            raise ValueError(f"module name must be a C identifier: {v!r}")
        return v


class QuickJsSection(BaseModel):
    input: str = DEFAULT_INPUT
    optimization: bool = False
    modules: Dict[str, str] = Field(default_factory=dict)


class ProjectManifest(BaseModel):
    name: str = DEFAULT_APP_NAME
    quickJs: QuickJsSection = Field(default_factory=QuickJsSection)

    def module_registrations(self, project_root: Path) -> List[ModuleRegistration]:
        """Registrations in manifest order, paths resolved against *project_root*."""
        return [
            ModuleRegistration(name=name, source_path=(project_root / src).resolve())
            for name, src in self.quickJs.modules.items()
        ]


def load_manifest(project_root: Path) -> ProjectManifest:
    """Read and validate ``<project_root>/package.json``."""
    path = project_root / MANIFEST_NAME
    if not path.is_file():
        raise ManifestError(f"{MANIFEST_NAME} not found in {project_root}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"{path} must hold a JSON object")

    # `name` may be a scoped npm name; keep only what is valid in a file name
    name = data.get("name") or DEFAULT_APP_NAME
    if isinstance(name, str) and "/" in name:
        name = name.rsplit("/", 1)[-1]

    try:
        manifest = ProjectManifest(
            name=name,
            quickJs=data.get("quickJs") or {},
        )
        manifest.module_registrations(project_root)
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest {path}: {e}") from e
    return manifest
