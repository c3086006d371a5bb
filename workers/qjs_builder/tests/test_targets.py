"""
test_targets — the static target registry.
"""
import pytest

from qjs_builder.core.targets import TARGETS, OsFamily, get_target, host_target, select_targets


class TestRegistry:

    def test_seven_targets(self):
        assert len(TARGETS) == 7

    def test_ids_unique(self):
        assert len({t.id for t in TARGETS}) == len(TARGETS)

    def test_helper_names_unique(self):
        names = [t.interpreter_binary for t in TARGETS] + [t.precompiler_binary for t in TARGETS]
        assert len(set(names)) == len(names)

    def test_windows_binaries_end_in_exe(self):
        for t in TARGETS:
            is_win = t.os_family == OsFamily.WIN32
            assert t.app_suffix.endswith(".exe") == is_win
            assert t.interpreter_binary.endswith(".exe") == is_win

    def test_app_binary_name(self):
        assert get_target("x86_64-windows-gnu").app_binary_name("demo") == "demo_win64.exe"
        assert get_target("aarch64-linux-gnu").app_binary_name("demo") == "demo_linux_arm64"

    def test_unknown_target(self):
        with pytest.raises(ValueError, match="Unknown target"):
            get_target("riscv64-linux-gnu")


class TestSelectTargets:

    def test_empty_means_all(self):
        assert select_targets(()) == TARGETS

    def test_registry_order_kept(self):
        picked = select_targets(("x86_64-macos", "x86-linux-gnu"))
        assert [t.id for t in picked] == ["x86-linux-gnu", "x86_64-macos"]

    def test_duplicates_collapse(self):
        assert len(select_targets(("x86-linux-gnu", "x86-linux-gnu"))) == 1


class TestHostTarget:

    @pytest.mark.parametrize("system,machine,expected", [
        ("Linux", "x86_64", "x86_64-linux-gnu"),
        ("Linux", "aarch64", "aarch64-linux-gnu"),
        ("Darwin", "arm64", "aarch64-macos"),
        ("Darwin", "x86_64", "x86_64-macos"),
        ("Windows", "AMD64", "x86_64-windows-gnu"),
    ])
    def test_mapping(self, system, machine, expected):
        assert host_target(system, machine).id == expected

    def test_unsupported(self):
        with pytest.raises(ValueError):
            host_target("SunOS", "sparc")
