"""
Reversible patching of vendor sources.

A patch is a ``PatchSpec``: an anchor, the text to insert, and a marker
whose presence proves the patch is already applied.  ``idempotent_insert``
is the only primitive that edits text; ``PatchManager`` adds the
file-level guarantees:

  - a ``<file>.bak`` backup is written before the first change of a run
    and never overwritten (first write wins),
  - ``restore_all`` copies each backup over its source and deletes it;
    it is the only code path that removes a backup.
"""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from qjs_builder.errors import PatchError

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


class PatchPosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    REPLACE = "replace"
    PREPEND = "prepend"


@dataclass(frozen=True)
class PatchSpec:
    """A structured, idempotent text insertion."""
    marker: str
    insertion: str
    anchor: Optional[str] = None
    position: PatchPosition = PatchPosition.AFTER
    required: bool = True
    description: str = ""


@dataclass
class PatchRecord:
    """Patch state of one vendor file during a run."""
    source_path: Path
    backup_path: Path
    applied: List[str] = field(default_factory=list)


def _read_source(path: Path) -> str:
    with open(path, encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()


def _write_source(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
        f.write(content)


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def idempotent_insert(content: str, spec: PatchSpec) -> str:
    """
    Apply *spec* to *content* and return the new text.

    Content already holding ``spec.marker`` is returned unchanged.  Only
    the first occurrence of the anchor is used.
    """
    if spec.marker in content:
        return content

    if spec.position == PatchPosition.PREPEND:
        return spec.insertion + content

    if spec.anchor is None or spec.anchor not in content:
        if spec.required:
            raise PatchError(
                f"Anchor not found for patch '{spec.description or spec.marker}': "
                f"{spec.anchor!r}"
            )
        logger.warning(
            "Optional patch skipped, anchor not found: %s",
            spec.description or spec.marker,
        )
        return content

    if spec.position == PatchPosition.BEFORE:
        replacement = spec.insertion + spec.anchor
    elif spec.position == PatchPosition.AFTER:
        replacement = spec.anchor + spec.insertion
    else:
        replacement = spec.insertion
    return content.replace(spec.anchor, replacement, 1)


class PatchManager:
    """Owns the vendor files for the duration of one build run."""

    def __init__(self, files: Iterable[Path]):
        self.records: Dict[Path, PatchRecord] = {}
        for f in files:
            path = Path(f)
            self.records[path] = PatchRecord(
                source_path=path,
                backup_path=backup_path_for(path),
            )

    def _record(self, path: Path) -> PatchRecord:
        path = Path(path)
        if path not in self.records:
            self.records[path] = PatchRecord(
                source_path=path,
                backup_path=backup_path_for(path),
            )
        return self.records[path]

    def apply_patch(self, path: Path, spec: PatchSpec) -> bool:
        """Apply a single spec to *path*.  Returns True if the file changed."""
        return self.apply_patches(path, [spec])

    def apply_patches(self, path: Path, specs: Iterable[PatchSpec]) -> bool:
        """
        Fold *specs* over the content of *path* and write the result.

        Nothing is written (and no backup made) when every marker is
        already present.  I/O errors are fatal and raised as PatchError.
        """
        record = self._record(path)
        try:
            original = _read_source(record.source_path)
        except OSError as e:
            raise PatchError(f"Cannot read {record.source_path}: {e}") from e

        content = original
        for spec in specs:
            patched = idempotent_insert(content, spec)
            if patched != content:
                record.applied.append(spec.marker)
            content = patched

        if content == original:
            logger.debug("%s already patched", record.source_path.name)
            return False

        try:
            if not record.backup_path.exists():
                shutil.copyfile(record.source_path, record.backup_path)
            _write_source(record.source_path, content)
        except OSError as e:
            raise PatchError(f"Cannot write {record.source_path}: {e}") from e

        logger.info("%s patched", record.source_path.name)
        return True

    def applied_markers(self) -> Dict[str, List[str]]:
        """Markers inserted this run, keyed by file name (unpatched files omitted)."""
        return {
            record.source_path.name: list(record.applied)
            for record in self.records.values()
            if record.applied
        }

    def restore_all(self) -> List[Path]:
        """
        Copy every existing backup over its source, then delete it.

        Best-effort per file: a failure is logged and the next file is
        still restored.
        """
        restored: List[Path] = []
        for record in self.records.values():
            if not record.backup_path.exists():
                continue
            try:
                shutil.copyfile(record.backup_path, record.source_path)
                record.backup_path.unlink()
            except OSError as e:
                logger.warning("Could not restore %s: %s", record.source_path, e)
                continue
            record.applied.clear()
            restored.append(record.source_path)
            logger.info("Restored original: %s", record.source_path.name)
        return restored
