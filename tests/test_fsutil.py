from __future__ import annotations

import json
import logging
import os

import pytest

from dynlint.core.fsutil import LOCK_FILENAME, atomic_install, directory_lock
from dynlint.core.logging import (
    EventLogger,
    NullEventLogger,
    configure_logging,
    get_event_logger,
    get_logger,
)


def test_lock_is_released_when_the_body_raises(tmp_path):
    directory = tmp_path / "locked"

    with pytest.raises(RuntimeError):
        with directory_lock(directory):
            raise RuntimeError("boom")

    with directory_lock(directory) as held:
        assert held == directory
    assert (directory / LOCK_FILENAME).is_file()


def test_atomic_install_leaves_only_the_destination(tmp_path):
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")
    destination = tmp_path / "out" / "target.bin"

    atomic_install(source, destination, mode=0o755)

    assert destination.read_bytes() == b"payload"
    assert os.listdir(destination.parent) == ["target.bin"]
    if os.name != "nt":
        assert destination.stat().st_mode & 0o777 == 0o755


def test_atomic_install_replaces_existing_file(tmp_path):
    source = tmp_path / "source.bin"
    source.write_bytes(b"new")
    destination = tmp_path / "target.bin"
    destination.write_bytes(b"old")

    atomic_install(source, destination)

    assert destination.read_bytes() == b"new"


def test_event_logger_appends_json_lines(tmp_path):
    path = tmp_path / "logs" / "events.jsonl"
    events = get_event_logger({"DYNLINT_EVENT_LOG": str(path)})

    events.record({"event": "driver.build", "toolchain": "stable"})
    events.record({"event": "driver.cache_hit", "toolchain": "stable"})

    assert isinstance(events, EventLogger)
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["driver.build", "driver.cache_hit"]
    assert all("timestamp" in line for line in lines)


def test_event_logging_is_off_by_default():
    assert isinstance(get_event_logger({}), NullEventLogger)


def test_verbosity_levels():
    assert configure_logging(0).level == logging.WARNING
    assert configure_logging(1).level == logging.INFO
    assert configure_logging(2).level == logging.DEBUG
    assert get_logger("resolver").name == "dynlint.resolver"
    configure_logging(0)
