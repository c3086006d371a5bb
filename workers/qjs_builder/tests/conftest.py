"""
Shared pytest fixtures for qjs_builder tests.

Provides a synthetic QuickJS vendor tree (only the anchors the patcher
needs), a small application project, and fake ``zig`` / ``qjsc`` tools
written as /bin/sh scripts so that full runs need no real toolchain.

The fake zig:
  - fails with exit 1 for the triple named in FAIL_TARGET,
  - fails with exit 3 if qjs.c was not patched before it was called,
  - writes an executable copy of the fake qjsc for ``qjsc_*`` outputs,
    and a small placeholder binary for everything else.

Tests using the fake tools are skipped on Windows.
"""
import os
import platform
import stat
import textwrap
from pathlib import Path
from typing import Dict, Optional, Tuple

import pytest

from qjs_builder.config import BuildConfig, Settings
from qjs_builder.io.manifest import load_manifest

LIBC_C = textwrap.dedent("""\
    #include <stdio.h>
    #include "quickjs-libc.h"

    static JSValue js_os_exec(JSContext *ctx, JSValueConst this_val,
                              int argc, JSValueConst *argv)
    {
        return JS_UNDEFINED;
    }

    static const JSCFunctionListEntry js_os_funcs[] = {
        JS_CFUNC_DEF("exec", 1, js_os_exec ),
    };

    static JSClassDef js_worker_class = {
        "Worker",
    };
""")

QJS_C = textwrap.dedent("""\
    #include "cutils.h"
    #include "quickjs-libc.h"

    static JSContext *JS_NewCustomContext(JSRuntime *rt)
    {
        JSContext *ctx = JS_NewContext(rt);
        js_init_module_std(ctx, "std");
        js_init_module_os(ctx, "os");
        return ctx;
    }
""")

QJSC_C = textwrap.dedent("""\
    #include "cutils.h"
    #include "quickjs-libc.h"

    int main(int argc, char **argv)
    {
        namelist_add(&cmodule_list, "std", "std", 0);
        namelist_add(&cmodule_list, "os", "os", 0);
        return 0;
    }
""")

SHIM_C = textwrap.dedent("""\
    #if defined(_WIN32)
    static JSValue js_os_exec_win32(JSContext *ctx, JSValueConst this_val,
                                    int argc, JSValueConst *argv)
    {
        return JS_UNDEFINED;
    }
    #endif
""")

HELLO_C = textwrap.dedent("""\
    #include "quickjs.h"
    JSModuleDef *js_init_module_hello(JSContext *ctx, const char *module_name)
    {
        return NULL;
    }
""")

FAKE_QJSC = textwrap.dedent("""\
    #!/bin/sh
    out=""
    prev=""
    last=""
    for arg in "$@"; do
      if [ "$prev" = "-o" ]; then out="$arg"; fi
      prev="$arg"
      last="$arg"
    done
    cat "$last" > "$out"
""")

FAKE_ZIG = textwrap.dedent("""\
    #!/bin/sh
    out=""
    prev=""
    triple=""
    for arg in "$@"; do
      if [ "$prev" = "-o" ]; then out="$arg"; fi
      if [ "$prev" = "-target" ]; then triple="$arg"; fi
      prev="$arg"
    done
    echo "$triple $(basename "$out")" >> "@LOG@"
    if [ "$triple" = "@FAIL@" ]; then
      echo "error: simulated failure for $triple" >&2
      exit 1
    fi
    if [ -n "@MODULE@" ] && ! grep -q "js_init_module_@MODULE@" "@VENDOR@/qjs.c"; then
      echo "error: qjs.c is not patched" >&2
      exit 3
    fi
    case "$(basename "$out")" in
      qjsc_*) cp "@QJSC@" "$out"; chmod +x "$out" ;;
      *) printf 'fake-binary' > "$out" ;;
    esac
""")

posix_only = pytest.mark.skipif(
    platform.system() == "Windows",
    reason="fake toolchain scripts need /bin/sh",
)


def _write_executable(path: Path, text: str) -> Path:
    path.write_text(text)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def snapshot(directory: Path) -> Dict[str, bytes]:
    """Relative path → bytes for every file under *directory*."""
    return {
        p.relative_to(directory).as_posix(): p.read_bytes()
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def vendor_dir(tmp_path) -> Path:
    """Synthetic QuickJS source tree."""
    d = tmp_path / "quickjs"
    d.mkdir()
    (d / "quickjs-libc.c").write_text(LIBC_C)
    (d / "qjs.c").write_text(QJS_C)
    (d / "qjsc.c").write_text(QJSC_C)
    for name in ("quickjs.c", "libregexp.c", "libunicode.c", "cutils.c", "dtoa.c"):
        (d / name).write_text(f"/* {name} */\n")
    return d


@pytest.fixture
def shim_file(tmp_path) -> Path:
    p = tmp_path / "exec_win32.c"
    p.write_text(SHIM_C)
    return p


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """Project with one native module and a darwin override of util.mjs."""
    root = tmp_path / "project"
    app = root / "app"
    (app / "lib").mkdir(parents=True)
    (root / "native").mkdir()

    (root / "package.json").write_text(
        '{"name": "demo", "quickJs": {"input": "app/index.mjs", '
        '"modules": {"hello": "native/hello.c"}}}'
    )
    (root / "native" / "hello.c").write_text(HELLO_C)
    (app / "index.mjs").write_text(
        "import * as hello from 'hello';\n"
        "import { f } from './util.mjs';\n"
        "f();\n"
    )
    (app / "util.mjs").write_text("export function f() { return 'generic'; }\n")
    (app / "util.darwin.mjs").write_text("export function f() { return 'darwin'; }\n")
    (app / "lib" / "spawn.win32.mjs").write_text("export const shell = 'cmd';\n")
    (app / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x01")
    return root


@pytest.fixture
def fake_tools(tmp_path, vendor_dir):
    """
    Factory: ``fake_tools(fail="x86-linux-gnu", module="hello")`` returns
    (zig_path, log_path).
    """
    def _make(fail: str = "", module: str = "hello") -> Tuple[Path, Path]:
        tools = tmp_path / "tools"
        tools.mkdir(exist_ok=True)
        log = tools / "zig.log"
        qjsc = _write_executable(tools / "fake_qjsc.sh", FAKE_QJSC)
        script = (
            FAKE_ZIG.replace("@LOG@", str(log))
            .replace("@FAIL@", fail)
            .replace("@MODULE@", module)
            .replace("@VENDOR@", str(vendor_dir))
            .replace("@QJSC@", str(qjsc))
        )
        zig = _write_executable(tools / "zig", script)
        return zig, log
    return _make


@pytest.fixture
def make_config(project_dir, vendor_dir, shim_file):
    """Factory building a BuildConfig for the fixture project on a linux x86_64 host."""
    def _make(
        zig: Path,
        targets: Tuple[str, ...] = (),
        jobs: int = 1,
        shim: Optional[Path] = shim_file,
        optimized: Optional[bool] = None,
    ) -> BuildConfig:
        settings = Settings(
            ZIG_PATH=str(zig),
            QUICKJS_DIR=str(vendor_dir),
            EXEC_SHIM_PATH=str(shim) if shim else None,
            HOST_PRECOMPILER=None,
            BUILD_TIMEOUT=60,
            BUILD_JOBS=jobs,
        )
        manifest = load_manifest(project_dir)
        if optimized is not None:
            manifest.quickJs.optimization = optimized
        return BuildConfig.create(
            project_dir,
            manifest,
            settings,
            target_ids=targets,
            system="Linux",
            machine="x86_64",
        )
    return _make


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep the developer's settings out of the tests."""
    for key in (
        "QJS_BUILDER_HOME", "ZIG_PATH", "QUICKJS_DIR", "EXEC_SHIM_PATH",
        "HOST_PRECOMPILER", "BUILD_TIMEOUT", "BUILD_JOBS",
    ):
        monkeypatch.delenv(key, raising=False)
    if os.name != "nt":
        monkeypatch.setenv("LC_ALL", "C")
