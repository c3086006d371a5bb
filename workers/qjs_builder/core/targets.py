"""
Target registry — static table of supported zig target triples.

Each descriptor names the helper binaries built for the target, the
suffix of the final application binary, and the flags passed to zig cc.
The table is built once at import time and never mutated.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class OsFamily(str, Enum):
    """OS families, spelled the way script file suffixes spell them."""
    WIN32 = "win32"
    LINUX = "linux"
    DARWIN = "darwin"


@dataclass(frozen=True)
class TargetDescriptor:
    """One (arch, OS) compilation target."""
    id: str
    os_family: OsFamily
    interpreter_binary: str
    precompiler_binary: str
    app_suffix: str
    link_flags: Tuple[str, ...]
    compile_flags: Tuple[str, ...]

    def app_binary_name(self, app_name: str) -> str:
        return f"{app_name}{self.app_suffix}"


_WIN_LIBS = ("-lm",)
_WIN_CFLAGS = ("-D_GNU_SOURCE",)
_POSIX_LIBS = ("-lm", "-lpthread", "-ldl")
_POSIX_CFLAGS = ("-D_GNU_SOURCE", "-DCONFIG_PTHREAD")


TARGETS: Tuple[TargetDescriptor, ...] = (
    TargetDescriptor("x86_64-windows-gnu", OsFamily.WIN32,
                     "qjs_win64.exe", "qjsc_win64.exe", "_win64.exe",
                     _WIN_LIBS, _WIN_CFLAGS),
    TargetDescriptor("x86-windows-gnu", OsFamily.WIN32,
                     "qjs_win32.exe", "qjsc_win32.exe", "_win32.exe",
                     _WIN_LIBS, _WIN_CFLAGS),
    TargetDescriptor("x86_64-linux-gnu", OsFamily.LINUX,
                     "qjs_linux64", "qjsc_linux64", "_linux64",
                     _POSIX_LIBS, _POSIX_CFLAGS),
    TargetDescriptor("x86-linux-gnu", OsFamily.LINUX,
                     "qjs_linux32", "qjsc_linux32", "_linux32",
                     _POSIX_LIBS, _POSIX_CFLAGS),
    TargetDescriptor("aarch64-linux-gnu", OsFamily.LINUX,
                     "qjs_linux_arm64", "qjsc_linux_arm64", "_linux_arm64",
                     _POSIX_LIBS, _POSIX_CFLAGS),
    TargetDescriptor("aarch64-macos", OsFamily.DARWIN,
                     "qjs_mac_arm", "qjsc_mac_arm", "_mac_arm",
                     _POSIX_LIBS, _POSIX_CFLAGS),
    TargetDescriptor("x86_64-macos", OsFamily.DARWIN,
                     "qjs_mac_intel", "qjsc_mac_intel", "_mac_intel",
                     _POSIX_LIBS, _POSIX_CFLAGS),
)

_BY_ID: Dict[str, TargetDescriptor] = {t.id: t for t in TARGETS}


def get_target(target_id: str) -> TargetDescriptor:
    """Look up a descriptor by its triple."""
    try:
        return _BY_ID[target_id]
    except KeyError:
        raise ValueError(f"Unknown target: {target_id}") from None


def select_targets(ids: Tuple[str, ...] | None = None) -> Tuple[TargetDescriptor, ...]:
    """Return the requested targets in registry order (all when *ids* is empty)."""
    if not ids:
        return TARGETS
    wanted = {get_target(i).id for i in ids}
    return tuple(t for t in TARGETS if t.id in wanted)


def host_target(system: str, machine: str) -> TargetDescriptor:
    """
    Descriptor matching the machine running the build.

    *system* and *machine* are ``platform.system()`` / ``platform.machine()``
    values.  Only the host's pre-compiler is ever executed locally.
    """
    system = system.lower()
    machine = machine.lower()
    is_arm = machine in ("arm64", "aarch64")

    if system == "darwin":
        return get_target("aarch64-macos" if is_arm else "x86_64-macos")
    if system == "linux":
        return get_target("aarch64-linux-gnu" if is_arm else "x86_64-linux-gnu")
    if system in ("windows", "win32"):
        return get_target("x86_64-windows-gnu")
    raise ValueError(f"Unsupported host platform: {system} {machine}")
