import logging

import pytest

from gcpboot.logging.log import init_logging

pytestmark = pytest.mark.usefixtures("isolated_loggers")


def test_log_file_lives_in_the_work_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("OMS_WORKDIR", str(tmp_path / "work"))

    logger, run_id, log_path = init_logging()

    assert log_path.parent == tmp_path / "work" / "logs"
    assert log_path.name.startswith("gcpboot-")
    assert run_id[:8] in log_path.name
    assert logger.propagate is False


def test_library_records_reach_the_file_only(tmp_path, capsys):
    logger, _, log_path = init_logging(base_dir=tmp_path)

    logging.getLogger("paramiko.transport").info("Authentication (publickey) successful!")
    logging.getLogger("google.api_core.retry").debug("retrying request")
    logger.info("Creating project")
    logger.debug("[10.10.0.3] $ hostname")

    console = capsys.readouterr().err
    assert "Creating project" in console
    assert "Authentication (publickey)" not in console
    assert "hostname" not in console

    text = log_path.read_text()
    assert "paramiko.transport | Authentication (publickey) successful!" in text
    assert "retrying request" not in text
    assert "gcpboot | [10.10.0.3] $ hostname" in text


def test_debug_flag_shows_gcpboot_debug_on_console(tmp_path, capsys):
    logger, _, _ = init_logging(base_dir=tmp_path, verbose=True)

    logger.debug("[10.10.0.3] $ hostname")
    logging.getLogger("paramiko.transport").info("Connected (version 2.0)")

    console = capsys.readouterr().err
    assert "[10.10.0.3] $ hostname" in console
    assert "Connected (version 2.0)" not in console
