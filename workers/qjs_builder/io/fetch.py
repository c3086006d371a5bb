"""
Fetch — download the zig toolchain and the QuickJS sources.

Both land under the tool home (``Settings.QJS_BUILDER_HOME``):

    <home>/zig/zig[.exe]
    <home>/quickjs/quickjs.c ...

Anything already present is left alone.
"""
from __future__ import annotations

import logging
import os
import platform
import shutil
import stat
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

import requests

from qjs_builder.config import Settings

logger = logging.getLogger(__name__)

QUICKJS_ARCHIVE_URL = "https://github.com/bellard/quickjs/archive/refs/heads/master.{ext}"
ZIG_ARCHIVE_URL = "https://ziglang.org/download/{version}/zig-{target}-{version}.{ext}"

_ZIG_OS = {"windows": "windows", "darwin": "macos", "linux": "linux"}
_ZIG_ARCH = {"x86_64": "x86_64", "amd64": "x86_64", "arm64": "aarch64", "aarch64": "aarch64"}


class FetchError(RuntimeError):
    """A dependency could not be downloaded or unpacked."""


def zig_host_target(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """``<arch>-<os>`` as used in zig release file names."""
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    os_name = _ZIG_OS.get(system)
    arch = _ZIG_ARCH.get(machine)
    if os_name is None or arch is None:
        raise FetchError(f"Unsupported platform/arch: {system} {machine}")
    return f"{arch}-{os_name}"


def download_file(url: str, dest: Path, timeout: int = 60) -> Path:
    """Stream *url* into *dest*; a partial file is removed on failure."""
    logger.info("Downloading %s", url)
    try:
        with requests.get(url, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1 << 16):
                    if chunk:
                        f.write(chunk)
    except (requests.RequestException, OSError) as e:
        if dest.exists():
            dest.unlink()
        raise FetchError(f"Failed to download {url}: {e}") from e
    return dest


def extract_archive(archive: Path, dest: Path) -> None:
    """Unpack a tar.* or zip archive into *dest*."""
    dest.mkdir(parents=True, exist_ok=True)
    try:
        if tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tf:
                tf.extractall(dest, filter="data")
        elif zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(dest)
        else:
            raise FetchError(f"Unsupported archive type: {archive}")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise FetchError(f"Failed to extract {archive}: {e}") from e


def _single_root(path: Path) -> Path:
    """Archives from GitHub and ziglang.org wrap everything in one folder."""
    entries = [p for p in path.iterdir()]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return path


def _install_tree(archive_url: str, dest: Path, suffix: str) -> None:
    """
    Unpack the archive at *archive_url* into *dest*.

    The archive's wrapping folder is stripped and its entries are merged
    into *dest*, which may already exist; same-named entries are replaced.
    """
    with tempfile.TemporaryDirectory(prefix="qjs_builder_") as tmp:
        tmp_dir = Path(tmp)
        archive = download_file(archive_url, tmp_dir / f"archive{suffix}")
        unpacked = tmp_dir / "unpacked"
        extract_archive(archive, unpacked)
        try:
            dest.mkdir(parents=True, exist_ok=True)
            for item in sorted(_single_root(unpacked).iterdir()):
                target = dest / item.name
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                elif target.exists() or target.is_symlink():
                    target.unlink()
                shutil.move(str(item), str(target))
        except OSError as e:
            raise FetchError(f"Failed to install into {dest}: {e}") from e


def fetch_quickjs(settings: Settings) -> Path:
    dest = settings.quickjs_dir
    if dest.is_dir():
        logger.info("QuickJS source already downloaded.")
        return dest
    ext = "zip" if os.name == "nt" else "tar.gz"
    _install_tree(QUICKJS_ARCHIVE_URL.format(ext=ext), dest, f".{ext}")
    logger.info("QuickJS sources installed in %s", dest)
    return dest


def fetch_zig(settings: Settings) -> Path:
    zig = settings.zig_path
    if zig.exists():
        logger.info("Zig %s already installed.", settings.ZIG_VERSION)
        return zig
    target = zig_host_target()
    ext = "zip" if target.endswith("windows") else "tar.xz"
    url = ZIG_ARCHIVE_URL.format(version=settings.ZIG_VERSION, target=target, ext=ext)
    _install_tree(url, zig.parent, f".{ext}")
    if not zig.exists():
        raise FetchError(f"zig executable missing after install: {zig}")
    if os.name != "nt":
        zig.chmod(zig.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    logger.info("Zig %s installed successfully at %s", settings.ZIG_VERSION, zig)
    return zig


def fetch_all(settings: Settings) -> None:
    """Install QuickJS sources, then zig."""
    logger.info("=== FETCHING DEPENDENCIES ===")
    fetch_quickjs(settings)
    fetch_zig(settings)
