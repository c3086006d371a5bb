"""
Build runner — top-level orchestration: project → native binaries.

    clean → patch → host tools → targets → temp cleanup → restore

A failing setup stage (clean, patch, host tools) skips every target.
A failing target is recorded and the next target is still built.
Vendor sources are restored whatever happened before.
"""
from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from qjs_builder.config import BuildConfig
from qjs_builder.core.artifacts import describe_artifact
from qjs_builder.core.injector import build_patch_plan
from qjs_builder.core.patching import PatchManager
from qjs_builder.core.resolver import resolve
from qjs_builder.core.targets import TargetDescriptor
from qjs_builder.core.tree_model import specific_name
from qjs_builder.core.toolchain import Toolchain
from qjs_builder.errors import BuildError
from qjs_builder.io.schema import (
    BuildReceipt,
    PhaseResult,
    PhaseStatus,
    RunStatus,
    Stage,
    StageResult,
    TargetResult,
    TargetStatus,
    now_iso,
)
from qjs_builder.io.writer import write_receipt
from qjs_builder.policy.profile import (
    INTERPRETER_SOURCE,
    LIBC_SOURCE,
    PRECOMPILER_SOURCE,
    REPL_STUB_SOURCE,
)

logger = logging.getLogger(__name__)

INTERMEDIATE_SUFFIX = "_app.c"
REPL_STUB_NAME = "repl_stub.c"

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


def exit_code_for(receipt: BuildReceipt) -> int:
    """0 when every target built, 2 when some failed, 1 on a setup failure."""
    if receipt.status == RunStatus.SUCCESS:
        return EXIT_OK
    if receipt.status == RunStatus.PARTIAL:
        return EXIT_PARTIAL
    return EXIT_FATAL


class BuildRun:
    """One build of one project for a set of targets."""

    def __init__(self, config: BuildConfig, toolchain: Optional[Toolchain] = None):
        self.config = config
        self.toolchain = toolchain or Toolchain(config)
        self.patches = PatchManager(
            config.quickjs_dir / name
            for name in (LIBC_SOURCE, INTERPRETER_SOURCE, PRECOMPILER_SOURCE)
        )
        self.receipt = BuildReceipt(
            app_name=config.app_name,
            entry=str(config.entry),
            optimized=config.optimized,
            host_target=config.host.id,
            modules={m.name: str(m.source_path) for m in config.modules},
        )
        self.receipt.builder.profile_id = config.profile.profile_id
        self.repl_stub = config.build_dir / REPL_STUB_NAME
        self.host_qjsc: Optional[Path] = None
        self.host_phases: List[PhaseResult] = []

    # -----------------------------------------------------------------
    # Setup stages
    # -----------------------------------------------------------------

    def clean(self) -> None:
        cfg = self.config
        logger.info("=== CLEAN ===")
        if cfg.build_dir.exists():
            shutil.rmtree(cfg.build_dir)
        for d in (cfg.build_dir, cfg.tools_dir, cfg.dist_dir):
            d.mkdir(parents=True, exist_ok=True)
        self.repl_stub.write_text(REPL_STUB_SOURCE)

    def patch(self) -> None:
        cfg = self.config
        logger.info("=== PATCHING QUICKJS SOURCES ===")
        if not cfg.zig_path.exists():
            raise BuildError(f"zig not found at {cfg.zig_path}; run `qjs-builder fetch` first")
        if not cfg.quickjs_dir.is_dir():
            raise BuildError(f"QuickJS sources not found at {cfg.quickjs_dir}")
        for m in cfg.modules:
            if not m.source_path.is_file():
                raise BuildError(f"Native source for module '{m.name}' not found: {m.source_path}")

        shim_source = None
        if cfg.shim_path is not None and cfg.shim_path.is_file():
            shim_source = cfg.shim_path.read_text(encoding="utf-8")
        else:
            logger.info("No exec shim at %s, os.exec stays POSIX-only", cfg.shim_path)

        plan = build_patch_plan([m.name for m in cfg.modules], shim_source)
        for name, specs in plan.items():
            if specs:
                self.patches.apply_patches(cfg.quickjs_dir / name, specs)

    def prepare_host_tools(self) -> None:
        """Make sure a host qjsc built from the patched sources exists."""
        cfg = self.config
        if cfg.host_precompiler is not None:
            if not cfg.host_precompiler.is_file():
                raise BuildError(f"HOST_PRECOMPILER not found: {cfg.host_precompiler}")
            self.host_qjsc = cfg.host_precompiler
            logger.info("Using host pre-compiler %s", self.host_qjsc)
            return

        logger.info("=== HOST TOOLS (%s) ===", cfg.host.id)
        phases = self.toolchain.build_helpers(cfg.host, self.repl_stub)
        failed = next((p for p in phases if p.status != PhaseStatus.SUCCESS), None)
        if failed is not None:
            raise BuildError(
                f"Host {failed.name} build failed for {cfg.host.id}: {failed.stderr_tail or ''}"
            )
        self.host_phases = phases
        self.host_qjsc = cfg.tools_dir / cfg.host.precompiler_binary

    # -----------------------------------------------------------------
    # Per-target pipeline
    # -----------------------------------------------------------------

    def intermediate_path(self, target: TargetDescriptor) -> Path:
        return self.config.tools_dir / f"{target.id}{INTERMEDIATE_SUFFIX}"

    def resolved_entry(self, tree: Path, target: TargetDescriptor) -> Path:
        """The entry script of *tree*, preferring its OS-specific variant."""
        specific = tree / specific_name(self.config.entry.name, target.os_family.value)
        if specific.is_file():
            return specific
        return tree / self.config.entry.name

    def build_target(self, target: TargetDescriptor) -> TargetResult:
        """resolve → helpers → precompile → link; stops at the first failure."""
        cfg = self.config
        result = TargetResult(target=target.id, os_family=target.os_family.value)
        logger.info("--- Compiling for: %s ---", target.id)

        try:
            tree = cfg.build_tree(target)
            stats = resolve(cfg.entry_dir, tree, target.os_family, exclude=cfg.scan_excludes)
            result.build_tree = str(tree)
            result.import_rewrites = len(stats.rewrites)
            result.phases.append(PhaseResult(name="resolve", exit_code=0, status=PhaseStatus.SUCCESS))

            if target.id == cfg.host.id and self.host_phases:
                helpers = [p.model_copy() for p in self.host_phases]
            else:
                helpers = self.toolchain.build_helpers(target, self.repl_stub)
            result.phases.extend(helpers)
            if not all(p.ok for p in helpers):
                result.phases += [PhaseResult(name="precompile"), PhaseResult(name="link")]
            else:
                logger.info("Build tools generated.")
                intermediate = self.intermediate_path(target)
                entry = self.resolved_entry(tree, target)
                pre = self.toolchain.precompile(self.host_qjsc, entry, intermediate)
                result.phases.append(pre)
                if not pre.ok:
                    result.phases.append(PhaseResult(name="link"))
                else:
                    output = cfg.dist_dir / target.app_binary_name(cfg.app_name)
                    link = self.toolchain.link_app(target, intermediate, output)
                    result.phases.append(link)
                    if link.ok:
                        if output.is_file():
                            result.artifact = describe_artifact(output, target)
                            result.status = TargetStatus.SUCCESS
                        else:
                            result.error_message = f"Linker reported success but {output.name} is missing"
        except Exception as e:
            logger.error("Compilation failed for %s: %s", target.id, e, exc_info=True)
            result.error_message = str(e)
            result.status = TargetStatus.FAILED
            return result

        if result.status == TargetStatus.SUCCESS:
            logger.info(
                "Binary built%s: %s",
                " and optimized" if cfg.optimized else "",
                target.app_binary_name(cfg.app_name),
            )
        else:
            failed = result.failed_phase()
            if failed is not None:
                result.error_message = f"{failed.name} {failed.status.value.lower()} (exit {failed.exit_code})"
                logger.error("Compilation failed for %s at %s", target.id, failed.name)
                if failed.stderr_tail:
                    logger.error("%s", failed.stderr_tail)
            else:
                logger.error("Compilation failed for %s: %s", target.id, result.error_message)
        return result

    def build_targets(self) -> List[TargetResult]:
        """All targets; results come back in registry order either way."""
        targets = list(self.config.targets)
        if self.config.jobs <= 1 or len(targets) <= 1:
            return [self.build_target(t) for t in targets]
        with ThreadPoolExecutor(max_workers=self.config.jobs) as pool:
            return list(pool.map(self.build_target, targets))

    # -----------------------------------------------------------------
    # Teardown
    # -----------------------------------------------------------------

    def cleanup_temp_files(self) -> None:
        logger.info("=== CLEANUP ===")
        cfg = self.config
        if cfg.tools_dir.is_dir():
            for f in sorted(cfg.tools_dir.glob(f"*{INTERMEDIATE_SUFFIX}")):
                try:
                    f.unlink()
                    logger.info("Removed temporary source: %s", f.name)
                except OSError as e:
                    logger.warning("Could not remove %s: %s", f, e)
        try:
            self.repl_stub.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", self.repl_stub, e)

    def restore(self) -> None:
        self.receipt.patches = self.patches.applied_markers()
        restored = self.patches.restore_all()
        self.receipt.restored_files = [str(p) for p in restored]

    # -----------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------

    def _stage(self, stage: Stage, fn) -> bool:
        try:
            fn()
        except (BuildError, OSError) as e:
            logger.error("%s stage failed: %s", stage.value, e)
            self.receipt.stages.append(StageResult(stage=stage, ok=False, detail=str(e)))
            return False
        self.receipt.stages.append(StageResult(stage=stage))
        return True

    def execute(self, write: bool = True) -> BuildReceipt:
        cfg = self.config
        try:
            if (
                self._stage(Stage.CLEAN, self.clean)
                and self._stage(Stage.PATCH, self.patch)
                and self._stage(Stage.HOST_TOOLS, self.prepare_host_tools)
            ):
                self.receipt.targets = self.build_targets()
                self.receipt.stages.append(StageResult(stage=Stage.TARGETS))
        finally:
            self.cleanup_temp_files()
            self.receipt.stages.append(StageResult(stage=Stage.TEMP_CLEANUP))
            self.restore()
            self.receipt.stages.append(StageResult(stage=Stage.RESTORE))

        self.receipt.status = self.receipt.compute_status()
        self.receipt.finished_at = now_iso()

        failed = [t.target for t in self.receipt.targets if t.status != TargetStatus.SUCCESS]
        if failed:
            logger.warning("%d target(s) failed: %s", len(failed), ", ".join(failed))
        logger.info("Build process complete. (Optimization: %s)", "ON" if cfg.optimized else "OFF")
        logger.info("Platform sources kept in build/ subfolders.")

        if write:
            try:
                path = write_receipt(self.receipt, cfg.build_dir)
                logger.info("Receipt written to %s", path)
            except OSError as e:
                logger.warning("Could not write receipt: %s", e)
        return self.receipt


def run_build(config: BuildConfig, write: bool = True) -> BuildReceipt:
    """Run a full build for *config* and return its receipt."""
    return BuildRun(config).execute(write=write)
