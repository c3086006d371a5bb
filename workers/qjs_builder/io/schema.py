"""
BuildReceipt Schema — qjs_builder v1

One JSON receipt per build run: build/build_receipt.json.
Records the setup stages, every target's phases with the exact tool
commands, and the produced artifacts.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from qjs_builder import BUILDER_NAME, BUILDER_VERSION, SCHEMA_VERSION


# =============================================================================
# Enums
# =============================================================================

class PhaseStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    SKIPPED = "SKIPPED"


class TargetStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RunStatus(str, Enum):
    """SUCCESS: every target built.  PARTIAL: some failed.  FAILED: a setup stage failed."""
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class Stage(str, Enum):
    CLEAN = "clean"
    PATCH = "patch"
    HOST_TOOLS = "host_tools"
    TARGETS = "targets"
    TEMP_CLEANUP = "temp_cleanup"
    RESTORE = "restore"


# =============================================================================
# Phases
# =============================================================================

class PhaseResult(BaseModel):
    """One tool invocation (or in-process step) for a target."""
    name: str
    command: str = ""
    exit_code: int = -1
    duration_ms: int = 0
    stderr_tail: Optional[str] = None
    status: PhaseStatus = PhaseStatus.SKIPPED

    @property
    def ok(self) -> bool:
        return self.status == PhaseStatus.SUCCESS


class ArtifactMeta(BaseModel):
    """A produced binary."""
    path: str
    sha256: str
    size_bytes: int
    format: str                 # ELF | PE | MACHO | UNKNOWN
    machine: Optional[str] = None
    matches_target: bool = True


class TargetResult(BaseModel):
    target: str
    os_family: str
    status: TargetStatus = TargetStatus.FAILED
    build_tree: Optional[str] = None
    import_rewrites: int = 0
    phases: List[PhaseResult] = Field(default_factory=list)
    artifact: Optional[ArtifactMeta] = None
    error_message: Optional[str] = None

    def failed_phase(self) -> Optional[PhaseResult]:
        for p in self.phases:
            if p.status in (PhaseStatus.FAILED, PhaseStatus.TIMEOUT):
                return p
        return None


class StageResult(BaseModel):
    stage: Stage
    ok: bool = True
    detail: Optional[str] = None


# =============================================================================
# Receipt
# =============================================================================

class BuilderInfo(BaseModel):
    name: str = BUILDER_NAME
    version: str = BUILDER_VERSION
    schema_version: str = SCHEMA_VERSION
    profile_id: str = ""


class BuildReceipt(BaseModel):
    builder: BuilderInfo = Field(default_factory=BuilderInfo)
    app_name: str
    entry: str
    optimized: bool
    host_target: str
    modules: Dict[str, str] = Field(default_factory=dict)

    created_at: str = Field(default_factory=lambda: now_iso())
    finished_at: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING

    stages: List[StageResult] = Field(default_factory=list)
    targets: List[TargetResult] = Field(default_factory=list)
    # vendor file name -> markers inserted during this run
    patches: Dict[str, List[str]] = Field(default_factory=dict)
    restored_files: List[str] = Field(default_factory=list)

    def compute_status(self) -> RunStatus:
        """Derive run status from stage and target results."""
        if any(not s.ok for s in self.stages if s.stage in (Stage.CLEAN, Stage.PATCH, Stage.HOST_TOOLS)):
            return RunStatus.FAILED
        if not self.targets:
            return RunStatus.FAILED
        if all(t.status == TargetStatus.SUCCESS for t in self.targets):
            return RunStatus.SUCCESS
        return RunStatus.PARTIAL


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()
