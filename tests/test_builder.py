from __future__ import annotations

import json

import pytest

from conftest import make_package
from dynlint.core.builder import ArtifactBuilder
from dynlint.core.errors import BuildError
from dynlint.core.filename import parse_path_filename
from dynlint.core.logging import EventLogger
from dynlint.core.package import read_package


@pytest.fixture
def package(tmp_path):
    root = make_package(tmp_path / "src" / "foo", "foo", "stable")
    return read_package(root, tmp_path / "libs")


def test_build_produces_a_discoverable_library(package, runner):
    path = ArtifactBuilder(runner, {"PATH": ""}).build(package)

    assert path == package.library_path()
    assert path.is_file()
    assert parse_path_filename(path) == ("foo", "stable")
    [call] = runner.library_builds()
    assert call.cmd == ["cargo", "build", "--release", "--target-dir", str(package.target_dir)]
    assert call.cwd == package.root


def test_each_package_is_built_once(package, runner):
    builder = ArtifactBuilder(runner, {})

    first = builder.build(package)
    second = builder.build(package)

    assert first == second
    assert len(runner.library_builds()) == 1


def test_build_environment(package, runner):
    environ = {"RUSTFLAGS": "-D warnings", "RUSTUP_TOOLCHAIN": "other", "RUSTC_WRAPPER": "x"}

    ArtifactBuilder(runner, environ).build(package)

    [call] = runner.library_builds()
    assert call.env["RUSTUP_TOOLCHAIN"] == "stable"
    assert "RUSTFLAGS" not in call.env
    assert "RUSTC_WRAPPER" not in call.env


def test_build_failure_carries_tool_output(package, runner):
    runner.fail_builds = True

    with pytest.raises(BuildError) as excinfo:
        ArtifactBuilder(runner, {}).build(package)

    assert "could not compile" in excinfo.value.output
    assert not package.library_path().exists()


def test_missing_build_product(package, runner):
    runner.skip_build_output = True

    with pytest.raises(BuildError, match="despite successful build"):
        ArtifactBuilder(runner, {}).build(package)


def test_no_build_predicts_the_path(package, runner):
    path = ArtifactBuilder(runner, {}, no_build=True).build(package)

    assert path == package.library_path()
    assert runner.calls == []


def test_build_events(package, runner, tmp_path):
    log = tmp_path / "events.jsonl"

    ArtifactBuilder(runner, {}, events=EventLogger(log)).build(package)

    events = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]
    assert [event["event"] for event in events] == ["build.start", "build.finish"]
    assert events[1]["path"] == str(package.library_path())


def test_unwritable_target_directory_is_a_build_error(package, runner, tmp_path):
    (tmp_path / "libs").write_bytes(b"not a directory")

    with pytest.raises(BuildError, match="Could not install library `foo`") as excinfo:
        ArtifactBuilder(runner, {}).build(package)

    assert isinstance(excinfo.value.__cause__, OSError)
    assert runner.calls == []


def test_build_output_is_captured_as_one_stream(package, runner):
    ArtifactBuilder(runner, {}).build(package)

    [call] = runner.library_builds()
    assert call.merge_stderr
