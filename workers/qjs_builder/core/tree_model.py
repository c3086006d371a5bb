"""
Tree model — platform resolution as a pure function over directory nodes.

Three phases:
  1. ``scan_tree``     disk → model
  2. ``resolve_tree``  model → model (filtering + import rewriting, no I/O)
  3. ``materialize``   model → disk

Script files (.mjs / .js) may carry an OS-family suffix,
``name.<family>.ext``.  For a given family, files of other families are
dropped, a generic file is dropped when its specific sibling exists, and
imports of a generic path are rebound to the specific file when it exists.
"""
from __future__ import annotations

import logging
import posixpath
import re
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from qjs_builder.core.targets import OsFamily

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = (".mjs", ".js")
KNOWN_FAMILIES = frozenset(f.value for f in OsFamily)

# import {a, b} from './x.mjs'   /   import x from "../y.js"
IMPORT_RE = re.compile(
    r"""(\bimport\s+[^;'"]+?\s+from\s*)(['"])([^'"]+?)\.(mjs|js)\2"""
)


class FileKind(str, Enum):
    SCRIPT = "script"
    ASSET = "asset"


@dataclass
class FileNode:
    name: str
    kind: FileKind
    content: Optional[str] = None       # scripts
    source: Optional[Path] = None       # assets, copied byte-for-byte


@dataclass
class DirNode:
    name: str
    children: Dict[str, "Node"] = field(default_factory=dict)

    def get(self, parts: Tuple[str, ...]) -> Optional["Node"]:
        node: Node = self
        for part in parts:
            if not isinstance(node, DirNode) or part not in node.children:
                return None
            node = node.children[part]
        return node


Node = Union[FileNode, DirNode]


@dataclass
class ResolveStats:
    dropped: List[str] = field(default_factory=list)
    rewrites: List[Tuple[str, str, str]] = field(default_factory=list)  # (file, old, new)


def is_script(name: str) -> bool:
    return name.endswith(SCRIPT_EXTENSIONS)


def split_script_name(name: str) -> Tuple[str, Optional[str], str]:
    """
    Split ``stem[.family].ext`` into (stem, family, ext).

    family is None for a generic file.
    """
    parts = name.split(".")
    ext = "." + parts[-1]
    if len(parts) > 2 and parts[-2] in KNOWN_FAMILIES:
        return ".".join(parts[:-2]), parts[-2], ext
    return ".".join(parts[:-1]), None, ext


def specific_name(name: str, family: str) -> str:
    stem, _, ext = split_script_name(name)
    return f"{stem}.{family}{ext}"


# ── Phase 1: scan ────────────────────────────────────────────────────────────

def scan_tree(path: Path, exclude: FrozenSet[Path] = frozenset()) -> DirNode:
    """
    Build a model of *path*; script contents are read as UTF-8.

    Directories whose resolved path is in *exclude* are skipped.
    """
    root = DirNode(name=path.name)
    for entry in sorted(path.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            if entry.resolve() in exclude:
                logger.debug("Skipping %s", entry)
                continue
            root.children[entry.name] = scan_tree(entry, exclude)
        elif is_script(entry.name):
            root.children[entry.name] = FileNode(
                name=entry.name,
                kind=FileKind.SCRIPT,
                content=entry.read_text(encoding="utf-8"),
                source=entry,
            )
        else:
            root.children[entry.name] = FileNode(
                name=entry.name,
                kind=FileKind.ASSET,
                source=entry,
            )
    return root


# ── Phase 2: resolve ─────────────────────────────────────────────────────────

def _keep(name: str, siblings: Dict[str, Node], family: str) -> bool:
    _, file_family, _ = split_script_name(name)
    if file_family is not None:
        return file_family == family
    return specific_name(name, family) not in siblings


def rewrite_imports(
    content: str,
    family: str,
    exists: Callable[[str], bool],
) -> Tuple[str, List[Tuple[str, str]]]:
    """
    Rebind ``from '<path>.ext'`` to ``<path>.<family>.ext`` when *exists*
    says the specific file is there.  Returns (content, [(old, new)]).
    """
    swaps: List[Tuple[str, str]] = []

    def _sub(m: "re.Match[str]") -> str:
        before, quote, import_path, ext = m.group(1), m.group(2), m.group(3), m.group(4)
        specific = f"{import_path}.{family}.{ext}"
        if not exists(specific):
            return m.group(0)
        swaps.append((f"{import_path}.{ext}", specific))
        return f"{before}{quote}{specific}{quote}"

    return IMPORT_RE.sub(_sub, content), swaps


def resolve_tree(
    root: DirNode,
    family: Union[OsFamily, str],
    exists: Optional[Callable[[str], bool]] = None,
    stats: Optional[ResolveStats] = None,
) -> DirNode:
    """
    Return a new tree holding only what the build for *family* needs.

    *exists* answers lookups for import targets outside *root* (given as a
    posix path relative to root, possibly starting with ``..``); without it
    such imports are left unchanged.
    """
    family = OsFamily(family).value
    if stats is None:
        stats = ResolveStats()

    def _exists_from(dir_parts: Tuple[str, ...]) -> Callable[[str], bool]:
        def _exists(import_path: str) -> bool:
            rel = posixpath.normpath(posixpath.join(*dir_parts, import_path) if dir_parts else import_path)
            if rel == ".." or rel.startswith("../") or posixpath.isabs(rel):
                return exists(rel) if exists is not None else False
            node = root.get(tuple(p for p in rel.split("/") if p not in ("", ".")))
            if isinstance(node, FileNode):
                return True
            return node is None and exists is not None and exists(rel)
        return _exists

    def _walk(node: DirNode, dir_parts: Tuple[str, ...]) -> DirNode:
        out = DirNode(name=node.name)
        for name, child in node.children.items():
            rel = posixpath.join(*dir_parts, name) if dir_parts else name
            if isinstance(child, DirNode):
                out.children[name] = _walk(child, dir_parts + (name,))
                continue
            if child.kind == FileKind.ASSET:
                out.children[name] = child
                continue
            if not _keep(name, node.children, family):
                stats.dropped.append(rel)
                continue
            content, swaps = rewrite_imports(child.content or "", family, _exists_from(dir_parts))
            for old, new in swaps:
                stats.rewrites.append((rel, old, new))
            out.children[name] = FileNode(
                name=name,
                kind=FileKind.SCRIPT,
                content=content,
                source=child.source,
            )
        return out

    return _walk(root, ())


# ── Phase 3: materialize ─────────────────────────────────────────────────────

def materialize(tree: DirNode, dest: Path) -> int:
    """Write *tree* under *dest*.  Returns the number of files written."""
    dest.mkdir(parents=True, exist_ok=True)
    written = 0
    for name, child in tree.children.items():
        target = dest / name
        if isinstance(child, DirNode):
            written += materialize(child, target)
        elif child.kind == FileKind.SCRIPT:
            target.write_text(child.content or "", encoding="utf-8")
            written += 1
        else:
            if child.source is None:
                raise ValueError(f"Asset without source path: {name}")
            shutil.copyfile(child.source, target)
            written += 1
    return written


def iter_files(tree: DirNode, prefix: str = "") -> List[str]:
    """Flat list of file paths (posix, relative) in *tree*."""
    out: List[str] = []
    for name, child in tree.children.items():
        rel = f"{prefix}{name}"
        if isinstance(child, DirNode):
            out.extend(iter_files(child, rel + "/"))
        else:
            out.append(rel)
    return out
