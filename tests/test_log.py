import logging
import re

import pytest

from ebridge.log import LIFECYCLE_LOGGER, configure_logging, emit


@pytest.fixture(autouse=True)
def _restore_ebridge_logging():
    yield
    for name in ("ebridge", LIFECYCLE_LOGGER):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)


def test_emit_attaches_event_fields(caplog):
    caplog.set_level(logging.INFO, logger="ebridge")

    emit(logging.getLogger("ebridge.test"), "admitted", "[%s] Connected from %s", "main", "10.0.0.7:5123", role="main")

    [record] = caplog.records
    assert record.getMessage() == "[main] Connected from 10.0.0.7:5123"
    assert record.event == "admitted"
    assert record.role == "main"


def test_log_file_gets_timestamped_lines(tmp_path):
    log_file = tmp_path / "ebridge.log"
    configure_logging(log_file, console=False)

    logging.getLogger("ebridge.gate").info("[bridge] Established main<->client")
    logging.getLogger("ebridge.gate").debug("not at info level")
    for handler in logging.getLogger("ebridge").handlers:
        handler.flush()

    lines = log_file.read_text().splitlines()
    assert len(lines) == 1
    assert re.fullmatch(r"\[\d{4}-\d\d-\d\d \d\d:\d\d:\d\d\] \[bridge\] Established main<->client", lines[0])


def test_reconfiguring_replaces_handlers(tmp_path):
    configure_logging(tmp_path / "a.log", console=True)
    configure_logging(tmp_path / "b.log", console=False, verbose=True)

    root = logging.getLogger("ebridge")
    assert len(root.handlers) == 1
    assert root.level == logging.DEBUG
