"""
test_resolver — per-OS build trees on disk.
"""
import pytest

from qjs_builder.core.resolver import resolve
from qjs_builder.core.targets import OsFamily

from conftest import snapshot


class TestResolve:

    def test_darwin_tree(self, project_dir, tmp_path):
        dest = tmp_path / "out"
        stats = resolve(project_dir / "app", dest, OsFamily.DARWIN)
        files = snapshot(dest)

        assert "util.darwin.mjs" in files
        assert "util.mjs" not in files
        assert "lib/spawn.win32.mjs" not in files
        assert b"from './util.darwin.mjs'" in files["index.mjs"]
        assert stats.rewrites == [("index.mjs", "./util.mjs", "./util.darwin.mjs")]

    def test_linux_tree_keeps_generic_text(self, project_dir, tmp_path):
        dest = tmp_path / "out"
        resolve(project_dir / "app", dest, "linux")
        files = snapshot(dest)

        assert "util.darwin.mjs" not in files
        assert files["index.mjs"] == (project_dir / "app" / "index.mjs").read_bytes()

    def test_win32_keeps_own_file_in_subdir(self, project_dir, tmp_path):
        dest = tmp_path / "out"
        resolve(project_dir / "app", dest, OsFamily.WIN32)
        assert (dest / "lib" / "spawn.win32.mjs").is_file()

    def test_assets_copied_byte_for_byte(self, project_dir, tmp_path):
        dest = tmp_path / "out"
        resolve(project_dir / "app", dest, OsFamily.LINUX)
        assert (dest / "logo.png").read_bytes() == (project_dir / "app" / "logo.png").read_bytes()

    def test_source_is_left_untouched(self, project_dir, tmp_path):
        before = snapshot(project_dir)
        resolve(project_dir / "app", tmp_path / "out", OsFamily.DARWIN)
        assert snapshot(project_dir) == before

    def test_destination_is_replaced(self, project_dir, tmp_path):
        dest = tmp_path / "out"
        dest.mkdir()
        (dest / "stale.mjs").write_text("old")
        resolve(project_dir / "app", dest, OsFamily.LINUX)
        assert not (dest / "stale.mjs").exists()

    def test_import_outside_source_checked_on_disk(self, tmp_path):
        src = tmp_path / "src"
        shared = tmp_path / "shared"
        src.mkdir()
        shared.mkdir()
        (shared / "x.mjs").write_text("")
        (shared / "x.linux.mjs").write_text("")
        (src / "index.mjs").write_text("import x from '../shared/x.mjs';\n")

        dest = tmp_path / "out"
        resolve(src, dest, OsFamily.LINUX)
        assert (dest / "index.mjs").read_text() == "import x from '../shared/x.linux.mjs';\n"

    def test_missing_source_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            resolve(tmp_path / "nope", tmp_path / "out", OsFamily.LINUX)

    def test_unknown_family_rejected(self, project_dir, tmp_path):
        with pytest.raises(ValueError):
            resolve(project_dir / "app", tmp_path / "out", "beos")

    def test_excluded_directories_not_mirrored(self, project_dir, tmp_path):
        src = project_dir / "app"
        (src / "build").mkdir()
        (src / "build" / "old.mjs").write_text("")
        dest = src / "build" / "linux"

        resolve(src, dest, OsFamily.LINUX, exclude=[src / "build"])

        assert "index.mjs" in snapshot(dest)
        assert not (dest / "build").exists()
