"""
Profile — build-policy descriptor and vendor-source layout.

The profile holds every compiler knob and every vendor anchor string
so that the core invoker and patcher carry no opinions.  Supporting a
newer QuickJS drop or another flag set is a profile change, not a code
change.
"""
from dataclasses import dataclass, field
from typing import List, Tuple


# Vendor files patched for the duration of a run
LIBC_SOURCE = "quickjs-libc.c"
INTERPRETER_SOURCE = "qjs.c"
PRECOMPILER_SOURCE = "qjsc.c"

# Anchors inside the vendor sources
LIBC_HEADER_ANCHOR = '#include "quickjs-libc.h"'
WORKER_CLASS_ANCHOR = "static JSClassDef js_worker_class = {"
EXEC_TABLE_ENTRY = '    JS_CFUNC_DEF("exec", 1, js_os_exec ),'
OS_INIT_ANCHOR = 'js_init_module_os(ctx, "os");'
OS_NAMELIST_ANCHOR = 'namelist_add(&cmodule_list, "os", "os", 0);'

PROCESS_GUARD = "#if defined(_WIN32)\n#include <process.h>\n#endif\n"
PROCESS_GUARD_MARKER = "#include <process.h>"

WIN32_EXEC_FUNCTION = "js_os_exec_win32"

REPL_STUB_SOURCE = (
    "const unsigned char qjsc_repl[] = {0}; "
    "const unsigned int qjsc_repl_size = 0;\n"
)


@dataclass(frozen=True)
class BuildProfile:
    """Compiler policy shared by every target of a run."""

    profile_id: str
    config_version: str

    base_sources: Tuple[str, ...]
    common_cflags: Tuple[str, ...] = ("-Wno-ignored-attributes",)
    strip_symbols: bool = True

    default_opt: Tuple[str, ...] = ("-O2",)
    optimized_opt: Tuple[str, ...] = ("-O3", "-flto")
    # darwin LTO needs lld; other targets only warn about it
    optimized_darwin_linker: Tuple[str, ...] = ("-fuse-ld=lld",)

    feature_strip_flags: Tuple[str, ...] = field(default=(
        "-fno-eval",
        "-fno-regexp",
        "-fno-proxy",
        "-fno-map",
        "-fno-typedarray",
        "-fno-promise",
    ))

    def opt_flags(self, optimized: bool, darwin: bool) -> List[str]:
        """Optimization flags for one target."""
        if not optimized:
            return list(self.default_opt)
        flags = list(self.optimized_opt)
        if darwin:
            flags.extend(self.optimized_darwin_linker)
        return flags

    def precompiler_flags(self, optimized: bool) -> List[str]:
        """qjsc feature flags; optimized builds drop unused subsystems."""
        return list(self.feature_strip_flags) if optimized else []

    @classmethod
    def v1(cls, config_version: str = "2024-01-13") -> "BuildProfile":
        """The default profile: zig cc over the QuickJS master tree."""
        return cls(
            profile_id="quickjs-zig-cc",
            config_version=config_version,
            base_sources=(
                "quickjs.c",
                "libregexp.c",
                "libunicode.c",
                "cutils.c",
                LIBC_SOURCE,
                "dtoa.c",
            ),
        )
