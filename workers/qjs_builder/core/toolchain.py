"""
Compiler invoker — zig cc and the host qjsc.

Every invocation is a blocking ``subprocess.run`` with an argv list,
captured output and a timeout.  Failures come back as ``PhaseResult``
records; nothing here raises on a tool error.
"""
from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Sequence

from qjs_builder.config import BuildConfig
from qjs_builder.core.targets import OsFamily, TargetDescriptor
from qjs_builder.io.schema import PhaseResult, PhaseStatus
from qjs_builder.policy.profile import INTERPRETER_SOURCE, PRECOMPILER_SOURCE

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 4000


def _tail(text: str) -> Optional[str]:
    text = text.strip()
    if not text:
        return None
    return text[-STDERR_TAIL_CHARS:]


class Toolchain:
    """Builds helpers and application binaries for one run's configuration."""

    def __init__(self, config: BuildConfig):
        self.config = config
        self.profile = config.profile

    # -----------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------

    def base_sources(self) -> List[Path]:
        """Vendor sources then native modules; identical for every target."""
        vendor = [self.config.quickjs_dir / name for name in self.profile.base_sources]
        return vendor + [m.source_path for m in self.config.modules]

    def compile_command(
        self,
        target: TargetDescriptor,
        output: Path,
        sources: Sequence[Path],
    ) -> List[str]:
        darwin = target.os_family == OsFamily.DARWIN
        cmd = [
            str(self.config.zig_path), "cc",
            "-target", target.id,
            f"-I{self.config.quickjs_dir}",
            *self.profile.opt_flags(self.config.optimized, darwin),
            *target.compile_flags,
            *self.profile.common_cflags,
            f'-DCONFIG_VERSION="{self.profile.config_version}"',
        ]
        if self.profile.strip_symbols:
            cmd.append("-s")
        cmd += ["-o", str(output)]
        cmd += [str(s) for s in sources]
        cmd += list(target.link_flags)
        return cmd

    def precompile_command(self, qjsc: Path, entry: Path, output: Path) -> List[str]:
        return [
            str(qjsc),
            *self.profile.precompiler_flags(self.config.optimized),
            "-e",
            "-o", str(output),
            str(entry),
        ]

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def run(self, name: str, cmd: List[str], cwd: Optional[Path] = None) -> PhaseResult:
        """Run one tool and record the outcome."""
        cmd_str = subprocess.list2cmdline(cmd)
        logger.debug("%s: %s", name, cmd_str)

        t0 = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd or self.config.project_root),
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired:
            return PhaseResult(
                name=name,
                command=cmd_str,
                exit_code=-1,
                duration_ms=int((time.monotonic() - t0) * 1000),
                stderr_tail=f"TIMEOUT after {self.config.timeout}s",
                status=PhaseStatus.TIMEOUT,
            )
        except OSError as e:
            return PhaseResult(
                name=name,
                command=cmd_str,
                exit_code=-1,
                duration_ms=int((time.monotonic() - t0) * 1000),
                stderr_tail=str(e),
                status=PhaseStatus.FAILED,
            )

        return PhaseResult(
            name=name,
            command=cmd_str,
            exit_code=result.returncode,
            duration_ms=int((time.monotonic() - t0) * 1000),
            stderr_tail=_tail(result.stderr),
            status=PhaseStatus.SUCCESS if result.returncode == 0 else PhaseStatus.FAILED,
        )

    # -----------------------------------------------------------------
    # Build steps
    # -----------------------------------------------------------------

    def build_interpreter(self, target: TargetDescriptor, repl_stub: Path) -> PhaseResult:
        sources = self.base_sources() + [repl_stub, self.config.quickjs_dir / INTERPRETER_SOURCE]
        out = self.config.tools_dir / target.interpreter_binary
        return self.run("interpreter", self.compile_command(target, out, sources))

    def build_precompiler(self, target: TargetDescriptor) -> PhaseResult:
        sources = self.base_sources() + [self.config.quickjs_dir / PRECOMPILER_SOURCE]
        out = self.config.tools_dir / target.precompiler_binary
        return self.run("precompiler", self.compile_command(target, out, sources))

    def build_helpers(self, target: TargetDescriptor, repl_stub: Path) -> List[PhaseResult]:
        """Interpreter then pre-compiler; the second is skipped if the first fails."""
        first = self.build_interpreter(target, repl_stub)
        if not first.ok:
            return [first, PhaseResult(name="precompiler")]
        return [first, self.build_precompiler(target)]

    def precompile(self, qjsc: Path, entry: Path, output: Path) -> PhaseResult:
        """Turn the resolved entry script into an embeddable C file."""
        return self.run("precompile", self.precompile_command(qjsc, entry, output))

    def link_app(self, target: TargetDescriptor, intermediate: Path, output: Path) -> PhaseResult:
        sources = [intermediate] + self.base_sources()
        return self.run("link", self.compile_command(target, output, sources))
