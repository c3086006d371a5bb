"""
test_manifest — package.json loading and validation.
"""
import pytest

from qjs_builder.errors import ManifestError
from qjs_builder.io.manifest import DEFAULT_APP_NAME, DEFAULT_INPUT, load_manifest


class TestLoadManifest:

    def test_fixture_project(self, project_dir):
        m = load_manifest(project_dir)
        regs = m.module_registrations(project_dir)

        assert m.name == "demo"
        assert m.quickJs.input == "app/index.mjs"
        assert m.quickJs.optimization is False
        assert [r.name for r in regs] == ["hello"]
        assert regs[0].source_path == (project_dir / "native" / "hello.c").resolve()

    def test_defaults(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")
        m = load_manifest(tmp_path)

        assert m.name == DEFAULT_APP_NAME
        assert m.quickJs.input == DEFAULT_INPUT
        assert m.quickJs.modules == {}

    def test_scoped_name(self, tmp_path):
        (tmp_path / "package.json").write_text('{"name": "@acme/tool"}')
        assert load_manifest(tmp_path).name == "tool"

    def test_module_order_kept(self, tmp_path):
        (tmp_path / "package.json").write_text(
            '{"quickJs": {"modules": {"zeta": "z.c", "alpha": "a.c"}}}'
        )
        regs = load_manifest(tmp_path).module_registrations(tmp_path)
        assert [r.name for r in regs] == ["zeta", "alpha"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="not found"):
            load_manifest(tmp_path)

    def test_invalid_json(self, tmp_path):
        (tmp_path / "package.json").write_text("{nope")
        with pytest.raises(ManifestError, match="Cannot read"):
            load_manifest(tmp_path)

    def test_not_an_object(self, tmp_path):
        (tmp_path / "package.json").write_text("[1, 2]")
        with pytest.raises(ManifestError):
            load_manifest(tmp_path)

    @pytest.mark.parametrize("bad", ["my-mod", "1st", "a b", ""])
    def test_module_name_must_be_identifier(self, tmp_path, bad):
        (tmp_path / "package.json").write_text(
            '{"quickJs": {"modules": {"%s": "m.c"}}}' % bad
        )
        with pytest.raises(ManifestError, match="Invalid manifest"):
            load_manifest(tmp_path)

    def test_optimization_must_be_bool(self, tmp_path):
        (tmp_path / "package.json").write_text('{"quickJs": {"optimization": "lots"}}')
        with pytest.raises(ManifestError):
            load_manifest(tmp_path)
