import logging
import os

from ebridge.daemon import remove_pid_file, write_pid_file
from ebridge.log import LIFECYCLE_LOGGER


def test_pid_file_round_trip(tmp_path):
    pid_file = tmp_path / "ebridge.pid"

    assert write_pid_file(pid_file)
    assert pid_file.read_text() == f"{os.getpid()}\n"

    remove_pid_file(pid_file)
    assert not pid_file.exists()
    # removing twice is harmless
    remove_pid_file(pid_file)


def test_unwritable_pid_file_is_reported_not_raised(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="ebridge")
    pid_file = tmp_path / "missing" / "ebridge.pid"

    assert not write_pid_file(pid_file)

    assert not pid_file.exists()
    [record] = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert record.name == LIFECYCLE_LOGGER
    assert "Failed to write PID file" in record.getMessage()
