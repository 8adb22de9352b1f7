from __future__ import annotations

import logging
import os
import warnings

import pytest

from conftest import make_package, touch_library
from dynlint.core.errors import AmbiguousSelectionError, ConfigurationError, EmptySelectionWarning
from dynlint.core.options import Options
from dynlint.core.resolver import complete, resolve


@pytest.fixture
def two_dirs(tmp_path):
    d1 = tmp_path / "D1"
    d2 = tmp_path / "D2"
    foo_a = touch_library(d1, "foo", "tc-A")
    bar_a = touch_library(d1, "bar", "tc-A")
    foo_b = touch_library(d2, "foo", "tc-B")
    return {
        "PLUGIN_LIBRARY_PATH": os.pathsep.join([str(d1), str(d2)]),
        "foo_a": foo_a,
        "bar_a": bar_a,
        "foo_b": foo_b,
    }


def _context(make_context, options, two_dirs):
    return make_context(options, PLUGIN_LIBRARY_PATH=two_dirs["PLUGIN_LIBRARY_PATH"])


def test_single_name(make_context, two_dirs):
    resolution = resolve(_context(make_context, Options(libs=["bar"]), two_dirs))

    assert resolution.selection.to_dict() == {"tc-A": [str(two_dirs["bar_a"])]}
    assert resolution.unbuilt == []


def test_ambiguous_name_lists_every_candidate(make_context, two_dirs):
    with pytest.raises(AmbiguousSelectionError) as excinfo:
        resolve(_context(make_context, Options(libs=["foo"]), two_dirs))

    error = excinfo.value
    assert error.name == "foo"
    assert error.candidates == [
        ("tc-A", str(two_dirs["foo_a"])),
        ("tc-B", str(two_dirs["foo_b"])),
    ]
    assert str(error).startswith("Found multiple libraries matching `foo`:")


def test_name_with_all_selects_every_toolchain(make_context, two_dirs):
    resolution = resolve(_context(make_context, Options(all=True, libs=["foo"]), two_dirs))

    assert resolution.selection.to_dict() == {
        "tc-A": [str(two_dirs["foo_a"])],
        "tc-B": [str(two_dirs["foo_b"])],
    }


def test_all_selects_everything(make_context, two_dirs):
    resolution = resolve(_context(make_context, Options(all=True), two_dirs))

    assert resolution.selection.to_dict() == {
        "tc-A": sorted([str(two_dirs["bar_a"]), str(two_dirs["foo_a"])]),
        "tc-B": [str(two_dirs["foo_b"])],
    }
    assert resolution.selection.toolchains() == ["tc-A", "tc-B"]


def test_absent_name_contributes_nothing(make_context, two_dirs):
    resolution = resolve(_context(make_context, Options(libs=["bar", "missing"]), two_dirs))
    assert resolution.selection.to_dict() == {"tc-A": [str(two_dirs["bar_a"])]}

    with pytest.warns(EmptySelectionWarning, match="No libraries matched"):
        resolution = resolve(_context(make_context, Options(libs=["missing"]), two_dirs))
    assert resolution.is_empty()


def test_no_criteria_warns_without_touching_the_index(make_context):
    ctx = make_context(Options(), PLUGIN_LIBRARY_PATH="relative/dir")

    with pytest.warns(EmptySelectionWarning, match="Nothing to do. Did you forget `--all`?"):
        resolution = resolve(ctx)

    assert resolution.is_empty()
    assert resolution.selection.is_empty()


def test_quiet_suppresses_the_warning(make_context):
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        resolve(make_context(Options(quiet=True)))

    assert caught == []


def test_path_bypasses_the_index(tmp_path, make_context):
    d3 = tmp_path / "D3"
    baz = touch_library(d3, "baz", "tc-C")
    touch_library(d3, "qux", "tc-C")
    ctx = make_context(Options(paths=[str(d3)], libs=["baz"]), PLUGIN_LIBRARY_PATH="relative")

    resolution = resolve(ctx)

    assert resolution.selection.to_dict() == {"tc-C": [str(baz.resolve())]}


def test_relative_path_is_relative_to_the_working_directory(project, make_context):
    lib = touch_library(project / "libs", "baz", "tc-C")

    resolution = resolve(make_context(Options(paths=["libs"])))

    assert resolution.selection.to_dict() == {"tc-C": [str(lib.resolve())]}


def test_path_to_a_prebuilt_file(tmp_path, make_context):
    lib = touch_library(tmp_path, "baz", "tc-C")

    resolution = resolve(make_context(Options(paths=[str(lib)])))

    assert resolution.selection.to_dict() == {"tc-C": [str(lib.resolve())]}


def test_path_to_a_badly_named_file(tmp_path, make_context):
    bad = tmp_path / "liblint.so"
    bad.write_bytes(b"")

    with pytest.raises(ConfigurationError, match="does not have the required form"):
        resolve(make_context(Options(paths=[str(bad)])))


def test_glob_skips_files_that_are_not_libraries(project, make_context, caplog):
    make_package(project / "lints" / "foo", "foo", "stable")
    (project / "lints" / "README.md").write_text("lints", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="dynlint.sources"):
        resolution = resolve(make_context(Options(paths=["lints/*"])))

    assert [candidate.name for candidate in resolution.unbuilt] == ["foo"]
    assert "README.md" in caplog.text


def test_missing_path(tmp_path, make_context):
    with pytest.raises(ConfigurationError, match="Could not find `--path"):
        resolve(make_context(Options(paths=[str(tmp_path / "nowhere")])))


def test_pattern_picks_packages_inside_a_location(tmp_path, make_context):
    ws = tmp_path / "ws"
    make_package(ws / "a", "a", "stable")
    make_package(ws / "b", "b", "stable")

    resolution = resolve(make_context(Options(paths=[str(ws)], pattern="a")))

    assert [candidate.name for candidate in resolution.unbuilt] == ["a"]


def test_pattern_may_not_escape_the_location(tmp_path, make_context):
    make_package(tmp_path / "ws" / "a", "a", "stable")
    make_package(tmp_path / "other", "other", "stable")

    with pytest.raises(ConfigurationError, match="outside of"):
        resolve(make_context(Options(paths=[str(tmp_path / "ws")], pattern="../other")))


def test_overlapping_criteria_build_a_source_once(project, make_context, runner):
    package = make_package(project / "lints" / "foo", "foo", "stable")
    ctx = make_context(Options(paths=[str(package), "lints/*"]))

    resolution = resolve(ctx)
    assert len(resolution.unbuilt) == 1
    assert resolution.selection.is_empty()

    selection = complete(resolution, ctx.builder)

    assert len(runner.library_builds()) == 1
    [(toolchain, locations)] = list(selection.partitions())
    assert toolchain == "stable"
    assert locations == [ctx.libraries_dir / "stable" / "release" / locations[0].name]
    assert locations[0].is_file()


def test_git_and_path_cannot_be_combined(make_context):
    with pytest.raises(ConfigurationError, match="cannot be used together"):
        make_context(Options(git="https://example.com/x.git", paths=["x"]))


def test_refs_require_git(make_context):
    with pytest.raises(ConfigurationError, match="only with `--git`"):
        make_context(Options(branch="main"))
