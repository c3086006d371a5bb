"""
Artifact inspection — hash produced binaries and check their container
format against the target.  ELF headers are read with pyelftools; PE and
Mach-O are recognised by magic number only.
"""
from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional, Tuple

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from qjs_builder.core.targets import OsFamily, TargetDescriptor
from qjs_builder.io.schema import ArtifactMeta

logger = logging.getLogger(__name__)

_MACHO_MAGICS = (
    b"\xcf\xfa\xed\xfe",  # 64-bit little endian
    b"\xce\xfa\xed\xfe",  # 32-bit little endian
    b"\xca\xfe\xba\xbe",  # universal
)

_ELF_MACHINES = {
    "x86_64": "EM_X86_64",
    "x86": "EM_386",
    "aarch64": "EM_AARCH64",
}

_EXPECTED_FORMAT = {
    OsFamily.WIN32: "PE",
    OsFamily.LINUX: "ELF",
    OsFamily.DARWIN: "MACHO",
}


def hash_file(path: Path) -> str:
    """SHA-256 of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def detect_format(path: Path) -> Tuple[str, Optional[str]]:
    """Return (format, machine); machine is only known for ELF."""
    with open(path, "rb") as f:
        magic = f.read(4)
    if magic == b"\x7fELF":
        try:
            with open(path, "rb") as f:
                return "ELF", ELFFile(f).header["e_machine"]
        except ELFError as e:
            logger.warning("ELF header unreadable for %s: %s", path, e)
            return "ELF", None
    if magic[:2] == b"MZ":
        return "PE", None
    if magic in _MACHO_MAGICS:
        return "MACHO", None
    return "UNKNOWN", None


def describe_artifact(path: Path, target: TargetDescriptor) -> ArtifactMeta:
    """Metadata for a linked binary; a format mismatch is flagged, not raised."""
    fmt, machine = detect_format(path)
    matches = fmt == _EXPECTED_FORMAT[target.os_family]
    if fmt == "ELF" and machine is not None:
        arch = target.id.split("-", 1)[0]
        expected = _ELF_MACHINES.get(arch)
        matches = matches and (expected is None or expected == machine)
    if not matches:
        logger.warning("%s: %s output does not look like a %s binary", target.id, fmt, target.os_family.value)
    return ArtifactMeta(
        path=str(path),
        sha256=hash_file(path),
        size_bytes=path.stat().st_size,
        format=fmt,
        machine=machine,
        matches_target=matches,
    )
