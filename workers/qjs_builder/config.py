"""
Configuration

``Settings`` reads the environment (and ``.env``) once.  ``BuildConfig``
is the frozen object the CLI derives from settings, the project manifest
and the host platform; every component receives it explicitly.
"""
from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from pydantic_settings import BaseSettings

from qjs_builder.core.targets import TargetDescriptor, host_target, select_targets
from qjs_builder.io.manifest import ModuleRegistration, ProjectManifest
from qjs_builder.policy.profile import BuildProfile

DEFAULT_SHIM = Path(__file__).resolve().parent / "shims" / "exec_win32.c"


class Settings(BaseSettings):
    """Tool settings"""

    # Where fetched dependencies live
    QJS_BUILDER_HOME: str = str(Path.home() / ".qjs_builder")
    ZIG_PATH: Optional[str] = None
    QUICKJS_DIR: Optional[str] = None
    EXEC_SHIM_PATH: Optional[str] = str(DEFAULT_SHIM)

    # Use an existing host qjsc instead of building one after patching
    HOST_PRECOMPILER: Optional[str] = None

    # Versions
    ZIG_VERSION: str = "0.15.2"
    QUICKJS_VERSION: str = "2024-01-13"

    # Build Defaults
    BUILD_TIMEOUT: int = 600  # seconds, per tool invocation
    BUILD_JOBS: int = 1

    @property
    def home(self) -> Path:
        return Path(self.QJS_BUILDER_HOME).expanduser()

    @property
    def zig_path(self) -> Path:
        if self.ZIG_PATH:
            return Path(self.ZIG_PATH).expanduser()
        exe = "zig.exe" if os.name == "nt" else "zig"
        return self.home / "zig" / exe

    @property
    def quickjs_dir(self) -> Path:
        if self.QUICKJS_DIR:
            return Path(self.QUICKJS_DIR).expanduser()
        return self.home / "quickjs"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@dataclass(frozen=True)
class BuildConfig:
    """Everything one build run needs, resolved up front."""

    project_root: Path
    app_name: str
    entry: Path                      # absolute path of the entry script
    optimized: bool
    modules: Tuple[ModuleRegistration, ...]

    zig_path: Path
    quickjs_dir: Path
    shim_path: Optional[Path]

    host: TargetDescriptor
    host_precompiler: Optional[Path]
    targets: Tuple[TargetDescriptor, ...]
    profile: BuildProfile

    timeout: int = 600
    jobs: int = 1

    @property
    def build_dir(self) -> Path:
        return self.project_root / "build"

    @property
    def tools_dir(self) -> Path:
        return self.project_root / "bin"

    @property
    def dist_dir(self) -> Path:
        return self.project_root / "dist"

    @property
    def entry_dir(self) -> Path:
        return self.entry.parent

    @property
    def scan_excludes(self) -> Tuple[Path, ...]:
        """Directories never mirrored into a build tree."""
        return (self.build_dir, self.tools_dir, self.dist_dir, self.project_root / "node_modules")

    def build_tree(self, target: TargetDescriptor) -> Path:
        return self.build_dir / target.id

    @classmethod
    def create(
        cls,
        project_root: Path,
        manifest: ProjectManifest,
        settings: Settings,
        target_ids: Tuple[str, ...] = (),
        system: Optional[str] = None,
        machine: Optional[str] = None,
    ) -> "BuildConfig":
        """Assemble the run configuration; host defaults to this machine."""
        project_root = project_root.resolve()
        host = host_target(
            system if system is not None else platform.system(),
            machine if machine is not None else platform.machine(),
        )
        shim = Path(settings.EXEC_SHIM_PATH) if settings.EXEC_SHIM_PATH else None
        override = Path(settings.HOST_PRECOMPILER) if settings.HOST_PRECOMPILER else None
        return cls(
            project_root=project_root,
            app_name=manifest.name,
            entry=(project_root / manifest.quickJs.input).resolve(),
            optimized=manifest.quickJs.optimization,
            modules=tuple(manifest.module_registrations(project_root)),
            zig_path=settings.zig_path,
            quickjs_dir=settings.quickjs_dir,
            shim_path=shim,
            host=host,
            host_precompiler=override,
            targets=select_targets(target_ids),
            profile=BuildProfile.v1(settings.QUICKJS_VERSION),
            timeout=settings.BUILD_TIMEOUT,
            jobs=max(1, settings.BUILD_JOBS),
        )
