"""
Platform tree resolver — disk entry point over ``tree_model``.
"""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, Union

from qjs_builder.core.targets import OsFamily
from qjs_builder.core.tree_model import (
    ResolveStats,
    materialize,
    resolve_tree,
    scan_tree,
)

logger = logging.getLogger(__name__)


def resolve(
    source_dir: Path,
    dest_dir: Path,
    os_family: Union[OsFamily, str],
    exclude: Iterable[Path] = (),
) -> ResolveStats:
    """
    Mirror *source_dir* into a fresh *dest_dir* for *os_family*.

    *source_dir* is only read.  Imports reaching outside it are checked
    against the real filesystem, relative to the importing file.
    Directories listed in *exclude* (the run's own outputs when they sit
    under *source_dir*) are not mirrored.
    """
    family = OsFamily(os_family)
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Source directory not found: {source_dir}")

    if dest_dir.exists():
        shutil.rmtree(dest_dir)

    stats = ResolveStats()
    skip = frozenset(Path(p).resolve() for p in (*exclude, dest_dir))
    model = scan_tree(source_dir, skip)
    resolved = resolve_tree(
        model,
        family,
        exists=lambda rel: (source_dir / rel).is_file(),
        stats=stats,
    )
    count = materialize(resolved, dest_dir)

    for rel, old, new in stats.rewrites:
        logger.info("[%s] %s: swapping import %s -> %s", family.value, rel, old, new)
    logger.debug(
        "[%s] resolved %d files into %s (%d dropped)",
        family.value, count, dest_dir, len(stats.dropped),
    )
    return stats
