"""
Module registration injector.

Turns the manifest's native modules (and the optional win32 exec shim)
into the ``PatchSpec`` lists applied to each vendor file.  Pure: no I/O.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from qjs_builder.core.patching import PatchPosition, PatchSpec
from qjs_builder.policy.profile import (
    EXEC_TABLE_ENTRY,
    INTERPRETER_SOURCE,
    LIBC_HEADER_ANCHOR,
    LIBC_SOURCE,
    OS_INIT_ANCHOR,
    OS_NAMELIST_ANCHOR,
    PRECOMPILER_SOURCE,
    PROCESS_GUARD,
    PROCESS_GUARD_MARKER,
    WIN32_EXEC_FUNCTION,
    WORKER_CLASS_ANCHOR,
)


def module_declaration(name: str) -> str:
    return f"JSModuleDef *js_init_module_{name}(JSContext *ctx, const char *module_name);"


def module_init_call(name: str) -> str:
    return f'js_init_module_{name}(ctx, "{name}");'


def module_namelist_entry(name: str) -> str:
    return f'namelist_add(&cmodule_list, "{name}", "{name}", 0);'


def declaration_spec(name: str) -> PatchSpec:
    decl = module_declaration(name)
    return PatchSpec(
        marker=decl,
        insertion=f"\n\n{decl}",
        anchor=LIBC_HEADER_ANCHOR,
        position=PatchPosition.AFTER,
        description=f"declare js_init_module_{name}",
    )


def init_call_spec(name: str) -> PatchSpec:
    call = module_init_call(name)
    return PatchSpec(
        marker=call,
        insertion=f"\n    {call}",
        anchor=OS_INIT_ANCHOR,
        position=PatchPosition.AFTER,
        description=f"register module {name}",
    )


def namelist_spec(name: str) -> PatchSpec:
    entry = module_namelist_entry(name)
    return PatchSpec(
        marker=entry,
        insertion=f"\n    {entry}",
        anchor=OS_NAMELIST_ANCHOR,
        position=PatchPosition.AFTER,
        description=f"embed module {name}",
    )


def process_guard_spec() -> PatchSpec:
    return PatchSpec(
        marker=PROCESS_GUARD_MARKER,
        insertion=PROCESS_GUARD,
        position=PatchPosition.PREPEND,
        description="win32 process.h guard",
    )


def exec_shim_specs(shim_source: str) -> List[PatchSpec]:
    """Insert the win32 exec implementation and switch the os.exec table entry."""
    win_entry = f'    JS_CFUNC_DEF("exec", 1, {WIN32_EXEC_FUNCTION} ),'
    table = (
        "#if defined(_WIN32)\n"
        f"{win_entry}\n"
        "#else\n"
        f"{EXEC_TABLE_ENTRY}\n"
        "#endif"
    )
    return [
        PatchSpec(
            marker=f"{WIN32_EXEC_FUNCTION}(",
            insertion=shim_source + "\n",
            anchor=WORKER_CLASS_ANCHOR,
            position=PatchPosition.BEFORE,
            description="win32 exec implementation",
        ),
        PatchSpec(
            marker=win_entry,
            insertion=table,
            anchor=EXEC_TABLE_ENTRY,
            position=PatchPosition.REPLACE,
            required=False,
            description="os.exec function table entry",
        ),
    ]


def build_patch_plan(
    module_names: Sequence[str],
    shim_source: Optional[str] = None,
) -> Dict[str, List[PatchSpec]]:
    """
    Patch specs keyed by vendor file name, in application order.

    The declaration goes into all three files; qjs.c also gets the init
    call and qjsc.c the embed request.
    """
    libc: List[PatchSpec] = [process_guard_spec()]
    interpreter: List[PatchSpec] = []
    precompiler: List[PatchSpec] = []

    for name in module_names:
        libc.append(declaration_spec(name))
        interpreter.append(declaration_spec(name))
        interpreter.append(init_call_spec(name))
        precompiler.append(declaration_spec(name))
        precompiler.append(namelist_spec(name))

    if shim_source is not None:
        libc.extend(exec_shim_specs(shim_source))

    return {
        LIBC_SOURCE: libc,
        INTERPRETER_SOURCE: interpreter,
        PRECOMPILER_SOURCE: precompiler,
    }
