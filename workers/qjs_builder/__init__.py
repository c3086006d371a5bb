"""
qjs_builder — QuickJS native binary builder

Compile QuickJS applications into standalone executables for every
supported (OS, arch) target with zig cc.  Vendor sources are patched
in place for the run and restored afterwards.
"""

__version__ = "1.0.0"
BUILDER_NAME = "qjs_builder"
BUILDER_VERSION = "v1"
SCHEMA_VERSION = "1.0"
