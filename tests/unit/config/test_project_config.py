"""Tests for kiln.ini parsing."""

from pathlib import Path

import pytest

from kiln.config import EnvVar, LinkSpec, ProjectConfig, ProjectConfigError


def write_ini(directory: Path, content: str) -> Path:
    ini = directory / "kiln.ini"
    ini.write_text(content)
    return ini


class TestProjectConfig:
    """Test descriptor parsing."""

    def test_missing_file(self, tmp_path):
        """Test that a missing descriptor raises."""
        with pytest.raises(ProjectConfigError, match="not found"):
            ProjectConfig(tmp_path / "kiln.ini")

    def test_malformed_file(self, tmp_path):
        """Test that a descriptor without section headers raises."""
        write_ini(tmp_path, "name = foo\n")
        with pytest.raises(ProjectConfigError, match="Failed to parse"):
            ProjectConfig.load(tmp_path)

    def test_undecodable_file(self, tmp_path):
        """Test that a descriptor that is not UTF-8 raises ProjectConfigError."""
        (tmp_path / "kiln.ini").write_bytes(b"[package]\nname = foo\xff\xfe\n")
        with pytest.raises(ProjectConfigError, match="Failed to parse"):
            ProjectConfig.load(tmp_path)

    def test_package_identity(self, tmp_path):
        write_ini(tmp_path, "[package]\nname = mydrv\nversion = 1.4.0\n")
        config = ProjectConfig.load(tmp_path)
        assert config.package_name == "mydrv"
        assert config.package_version == "1.4.0"
        assert config.project_dir == tmp_path

    def test_package_identity_absent(self, tmp_path):
        write_ini(tmp_path, "[port]\n")
        config = ProjectConfig.load(tmp_path)
        assert config.package_name is None
        assert config.package_version is None

    def test_deps_shapes(self, tmp_path):
        """Test each dependency declaration shape, in declaration order."""
        write_ini(
            tmp_path,
            "[deps]\n"
            "bare\n"
            "pinned = 1\\.2\\..*\n"
            "fetched = 2\\..* git https://example.org/fetched.git v2.0\n"
            "broken = a b\n",
        )
        deps = ProjectConfig.load(tmp_path).get_deps()
        assert deps == [
            "bare",
            ("pinned", "1\\.2\\..*"),
            ("fetched", "2\\..*", ("git", "https://example.org/fetched.git", "v2.0")),
            ("broken", "a", "b"),
        ]

    def test_deps_keep_case(self, tmp_path):
        write_ini(tmp_path, "[deps]\nMyLib\n")
        assert ProjectConfig.load(tmp_path).get_deps() == ["MyLib"]

    def test_deps_unbalanced_quotes(self, tmp_path):
        write_ini(tmp_path, "[deps]\nbad = 'unterminated\n")
        with pytest.raises(ProjectConfigError, match="Invalid dependency"):
            ProjectConfig.load(tmp_path).get_deps()

    def test_no_deps_section(self, tmp_path):
        write_ini(tmp_path, "[package]\nname = x\n")
        assert ProjectConfig.load(tmp_path).get_deps() == []

    def test_default_sources(self, tmp_path):
        write_ini(tmp_path, "[package]\nname = x\n")
        assert ProjectConfig.load(tmp_path).get_port_sources() == ["c_src/*.c"]

    def test_custom_sources(self, tmp_path):
        write_ini(tmp_path, "[port]\nsources = src/*.c\n  src/*.cpp\n")
        assert ProjectConfig.load(tmp_path).get_port_sources() == ["src/*.c", "src/*.cpp"]

    def test_port_envs_gated_and_ungated(self, tmp_path):
        """Test that [port.env:<regex>] entries carry their gate."""
        write_ini(
            tmp_path,
            "[port.env]\n"
            "CFLAGS = $CFLAGS -O2\n"
            "[port.env:x86_64.*-linux]\n"
            "CFLAGS = $CFLAGS -march=x86-64\n",
        )
        envs = ProjectConfig.load(tmp_path).get_port_envs()
        assert envs == [
            EnvVar("CFLAGS", "$CFLAGS -O2"),
            EnvVar("CFLAGS", "$CFLAGS -march=x86-64", "x86_64.*-linux"),
        ]

    def test_port_envs_no_interpolation(self, tmp_path):
        write_ini(tmp_path, "[port.env]\nDRV_CFLAGS = %(x)s ${INCLUDE}\n")
        envs = ProjectConfig.load(tmp_path).get_port_envs()
        assert envs[0].value == "%(x)s ${INCLUDE}"

    def test_port_envs_invalid_key(self, tmp_path):
        write_ini(tmp_path, "[port.env]\nNOT-VALID = 1\n")
        with pytest.raises(ProjectConfigError, match=r"\[port.env\]"):
            ProjectConfig.load(tmp_path).get_port_envs()

    def test_port_envs_invalid_gate(self, tmp_path):
        write_ini(tmp_path, "[port.env:(unclosed]\nCFLAGS = -O2\n")
        with pytest.raises(ProjectConfigError, match="Invalid architecture regex"):
            ProjectConfig.load(tmp_path).get_port_envs()

    def test_so_specs_absent(self, tmp_path):
        write_ini(tmp_path, "[package]\nname = x\n")
        assert ProjectConfig.load(tmp_path).get_so_specs() is None

    def test_so_specs(self, tmp_path):
        write_ini(
            tmp_path,
            "[port.so_specs]\n"
            "priv/a.so = c_src/a.o c_src/common.o\n"
            "priv/b.so = c_src/b.o\n",
        )
        specs = ProjectConfig.load(tmp_path).get_so_specs()
        assert specs == [
            LinkSpec(Path("priv/a.so"), (Path("c_src/a.o"), Path("c_src/common.o"))),
            LinkSpec(Path("priv/b.so"), (Path("c_src/b.o"),)),
        ]

    def test_pre_script(self, tmp_path):
        write_ini(
            tmp_path,
            "[port]\npre_script = ./configure --quiet\npre_script_sentinel = config.h\n",
        )
        assert ProjectConfig.load(tmp_path).get_pre_script() == ("./configure --quiet", "config.h")

    def test_pre_script_without_sentinel(self, tmp_path):
        write_ini(tmp_path, "[port]\npre_script = ./configure\n")
        with pytest.raises(ProjectConfigError, match="pre_script_sentinel"):
            ProjectConfig.load(tmp_path).get_pre_script()

    def test_scripts_absent(self, tmp_path):
        write_ini(tmp_path, "[port]\n")
        config = ProjectConfig.load(tmp_path)
        assert config.get_pre_script() is None
        assert config.get_cleanup_script() is None

    def test_cleanup_script(self, tmp_path):
        write_ini(tmp_path, "[port]\ncleanup_script = make distclean\n")
        assert ProjectConfig.load(tmp_path).get_cleanup_script() == "make distclean"
