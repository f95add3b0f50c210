"""Tests for incremental port compilation."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from kiln.build import CompilationError, EnvironmentComposer, PortCompiler
from kiln.config import ProjectConfig, ProjectConfigError
from kiln.packages import CODE_PATH_ENV, CodePath
from kiln.process_utils import CommandResult

LINUX = "x86_64-unknown-linux-gnu-64"


class FakeToolchain:
    """Stands in for the compiler, linker and shell.

    Every artifact it writes gets a strictly increasing modification time,
    so staleness decisions do not depend on filesystem timestamp resolution.
    """

    def __init__(self):
        self.clock = 1_000_000.0
        self.commands = []
        self.scripts = []
        self.envs = []
        self.fail_on = None
        self.script_returncode = 0

    def tick(self) -> float:
        self.clock += 10
        return self.clock

    def touch(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.write_text("")
        mtime = self.tick()
        os.utime(path, (mtime, mtime))

    def run(self, command, cwd=None, env=None, shell=False):
        if shell:
            self.scripts.append(command)
            return CommandResult(command, self.script_returncode, "", "script output")

        self.commands.append(command)
        self.envs.append(env)
        if self.fail_on is not None and self.fail_on in command:
            return CommandResult(command, 1, "", "error: expected ';'")
        self.touch(Path(cwd) / command[command.index("-o") + 1])
        return CommandResult(command, 0, "", "")

    @property
    def compiles(self):
        return [c for c in self.commands if "-c" in c]

    @property
    def links(self):
        return [c for c in self.commands if "-c" not in c]


@pytest.fixture
def toolchain():
    fake = FakeToolchain()
    with patch("kiln.build.compilation_executor.run_command", side_effect=fake.run), \
            patch("kiln.build.linker.run_command", side_effect=fake.run):
        yield fake


@pytest.fixture
def project(tmp_path, toolchain):
    (tmp_path / "kiln.ini").write_text("[package]\nname = mydrv\nversion = 1.0\n")
    for name in ["a.c", "b.c"]:
        toolchain.touch(tmp_path / "c_src" / name)
    return tmp_path


def make_compiler(project_dir: Path, jobs: int = 1) -> PortCompiler:
    return PortCompiler(project_dir, jobs=jobs, composer=EnvironmentComposer(arch=LINUX), show_progress=False)


def build(project_dir: Path, jobs: int = 1, code_path=None):
    return make_compiler(project_dir, jobs).compile(
        ProjectConfig.load(project_dir), code_path=code_path, process_env={}
    )


class TestPortCompiler:
    """Test compile and relink decisions."""

    def test_no_sources_is_noop(self, tmp_path, toolchain):
        (tmp_path / "kiln.ini").write_text("[package]\nname = empty\n")

        result = build(tmp_path)

        assert result.is_noop
        assert toolchain.commands == []

    def test_first_build(self, project, toolchain):
        result = build(project)

        assert result.compiled == [Path("c_src/a.c"), Path("c_src/b.c")]
        assert result.linked == [Path("priv/mydrv_drv.so")]
        assert (project / "c_src" / "a.o").exists()
        assert (project / "priv" / "mydrv_drv.so").exists()

        link = toolchain.links[0]
        assert link[0] == "gcc"
        assert link[1:3] == [str(Path("c_src/a.o")), str(Path("c_src/b.o"))]
        assert link[-2:] == ["-o", str(Path("priv/mydrv_drv.so"))]

    def test_compile_command(self, project, toolchain):
        build(project)

        command = toolchain.compiles[0]
        assert command[:2] == ["gcc", "-c"]
        assert "-fPIC" in command
        assert command[-3:] == [str(Path("c_src/a.c")), "-o", str(Path("c_src/a.o"))]

    def test_rebuild_without_changes_is_noop(self, project, toolchain):
        build(project)
        toolchain.commands.clear()

        result = build(project)

        assert toolchain.commands == []
        assert result.compiled == []
        assert result.linked == []
        assert result.skipped == [Path("priv/mydrv_drv.so")]

    def test_touch_one_source(self, project, toolchain):
        build(project)
        toolchain.commands.clear()
        toolchain.touch(project / "c_src" / "a.c")

        result = build(project)

        assert result.compiled == [Path("c_src/a.c")]
        assert len(toolchain.compiles) == 1
        assert result.linked == [Path("priv/mydrv_drv.so")]

    def test_missing_output_is_relinked(self, project, toolchain):
        build(project)
        toolchain.commands.clear()
        (project / "priv" / "mydrv_drv.so").unlink()

        result = build(project)

        assert toolchain.compiles == []
        assert result.linked == [Path("priv/mydrv_drv.so")]

    def test_explicit_link_specs(self, project, toolchain):
        (project / "kiln.ini").write_text(
            "[package]\nname = mydrv\n"
            "[port.so_specs]\n"
            "priv/a.so = c_src/a.o\n"
            "priv/b.so = c_src/b.o\n"
        )
        build(project)
        toolchain.commands.clear()
        toolchain.touch(project / "c_src" / "b.c")

        result = build(project)

        assert result.compiled == [Path("c_src/b.c")]
        assert result.linked == [Path("priv/b.so")]
        assert result.skipped == [Path("priv/a.so")]

    def test_duplicate_sources_compiled_once(self, project, toolchain):
        (project / "kiln.ini").write_text(
            "[package]\nname = mydrv\n[port]\nsources = c_src/*.c c_src/a.c\n"
        )

        result = build(project)

        assert result.compiled == [Path("c_src/a.c"), Path("c_src/b.c")]
        link = toolchain.links[0]
        assert link.count(str(Path("c_src/a.o"))) == 2

    def test_cxx_sources_use_cxx(self, project, toolchain):
        toolchain.touch(project / "c_src" / "x.cpp")
        (project / "kiln.ini").write_text(
            "[package]\nname = mydrv\n[port]\nsources = c_src/*.cpp\n"
        )

        build(project)

        assert toolchain.compiles[0][0] == "g++"

    def test_compile_failure_stops_build(self, project, toolchain):
        toolchain.fail_on = str(Path("c_src/a.c"))

        with pytest.raises(CompilationError, match="expected ';'"):
            build(project)

        assert len(toolchain.compiles) == 1
        assert toolchain.links == []

    def test_env_overrides_reach_compiler(self, project, toolchain):
        (project / "kiln.ini").write_text(
            "[package]\nname = mydrv\n[port.env]\nCFLAGS = $CFLAGS -O3\n"
        )

        build(project)

        assert "-O3" in toolchain.compiles[0]

    def test_code_path_exported(self, project, toolchain):
        code_path = CodePath()
        code_path.add(Path("/opt/libs/foo"))

        build(project, code_path=code_path)

        assert toolchain.envs[0][CODE_PATH_ENV] == str(Path("/opt/libs/foo"))

    def test_missing_package_name(self, project, toolchain):
        (project / "kiln.ini").write_text("[port]\nsources = c_src/*.c\n")

        with pytest.raises(ProjectConfigError, match="no \\[package\\] name"):
            build(project)

    def test_parallel_build(self, project, toolchain):
        toolchain.touch(project / "c_src" / "c.c")

        result = build(project, jobs=4)

        assert result.compiled == [Path("c_src/a.c"), Path("c_src/b.c"), Path("c_src/c.c")]
        assert len(toolchain.compiles) == 3
        assert result.linked == [Path("priv/mydrv_drv.so")]

    def test_parallel_failure(self, project, toolchain):
        toolchain.fail_on = str(Path("c_src/b.c"))

        with pytest.raises(CompilationError):
            build(project, jobs=2)

        assert toolchain.links == []


class TestHooks:
    """Test the pre-build and cleanup scripts."""

    def write_config(self, project: Path) -> None:
        (project / "kiln.ini").write_text(
            "[package]\nname = mydrv\n"
            "[port]\n"
            "pre_script = ./configure\n"
            "pre_script_sentinel = config.h\n"
            "cleanup_script = rm -f config.h\n"
        )

    def test_pre_script_runs(self, project, toolchain):
        self.write_config(project)

        build(project)

        assert toolchain.scripts == ["./configure"]

    def test_pre_script_skipped_with_sentinel(self, project, toolchain):
        self.write_config(project)
        (project / "config.h").write_text("")

        build(project)

        assert toolchain.scripts == []
        assert len(toolchain.compiles) == 2

    def test_pre_script_failure(self, project, toolchain):
        self.write_config(project)
        toolchain.script_returncode = 2

        with pytest.raises(CompilationError, match="./configure failed"):
            build(project)

        assert toolchain.compiles == []

    def test_pre_script_not_run_without_sources(self, tmp_path, toolchain):
        self.write_config(tmp_path)

        build(tmp_path)

        assert toolchain.scripts == []

    def test_clean(self, project, toolchain):
        self.write_config(project)
        (project / "config.h").write_text("")
        build(project)

        result = make_compiler(project).clean(ProjectConfig.load(project), process_env={})

        assert sorted(result.deleted) == sorted([
            project / "c_src" / "a.o",
            project / "c_src" / "b.o",
            project / "priv" / "mydrv_drv.so",
        ])
        assert not (project / "c_src" / "a.o").exists()
        assert (project / "c_src" / "a.c").exists()
        assert toolchain.scripts == ["rm -f config.h"]

    def test_clean_nothing_built(self, tmp_path, toolchain):
        (tmp_path / "kiln.ini").write_text("[port]\n")

        result = make_compiler(tmp_path).clean(ProjectConfig.load(tmp_path), process_env={})

        assert result.deleted == []

    def test_clean_missing_package_name(self, project, toolchain):
        (project / "kiln.ini").write_text("[port]\nsources = c_src/*.c\n")

        with pytest.raises(ProjectConfigError, match="no \\[package\\] name"):
            make_compiler(project).clean(ProjectConfig.load(project), process_env={})

    def test_clean_explicit_specs_without_package_name(self, project, toolchain):
        (project / "kiln.ini").write_text(
            "[port]\nsources = c_src/*.c\n"
            "[port.so_specs]\npriv/custom.so = c_src/a.o\n"
        )
        toolchain.touch(project / "priv" / "custom.so")

        result = make_compiler(project).clean(ProjectConfig.load(project), process_env={})

        assert result.deleted == [project / "priv" / "custom.so"]

    def test_cleanup_failure(self, project, toolchain):
        self.write_config(project)
        toolchain.script_returncode = 1

        with pytest.raises(CompilationError):
            make_compiler(project).clean(ProjectConfig.load(project), process_env={})
