import logging

import pytest

from gcpboot.bootstrap.bootstrapper import Bootstrapper
from gcpboot.bootstrap.environment import Environment
from gcpboot.bootstrap.step_logger import StepLogger
from gcpboot.config.loader import YamlInstallConfigManager
from gcpboot.logging.log import LIBRARY_LOGGERS
from gcpboot.observers.dispatcher import EventBus

from fakes import Capture, FakeExecutor, FakeProvisioningClient


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def fake_client():
    return FakeProvisioningClient()


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def make_env(tmp_path):
    pub = tmp_path / "id_ed25519.pub"
    pub.write_text("ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIFakeKeyMaterial operator@laptop\n")

    def _make(**overrides):
        env = Environment(
            project_name="demo",
            billing_account="0123AB-4567CD-89EF01",
            base_domain="example.com",
            ssh_public_key_path=str(pub),
            install_config_path=str(tmp_path / "config.yaml"),
            secrets_file_path=str(tmp_path / "prod.vault.yaml"),
        )
        for key, value in overrides.items():
            setattr(env, key, value)
        return env

    return _make


@pytest.fixture
def make_bootstrapper(tmp_path, capture):
    def _make(env, client, executor, **kw):
        kw.setdefault("stlog", StepLogger(EventBus([capture]), run_id="test-run", project=env.project_name))
        kw.setdefault("sleep", lambda _s: None)
        return Bootstrapper(
            env,
            client=client,
            executor=executor,
            config_manager=YamlInstallConfigManager(),
            workdir=tmp_path / "work",
            **kw,
        )

    return _make


@pytest.fixture
def isolated_loggers():
    """Undo what init_logging does to the gcpboot and library loggers."""
    saved = []
    for name in ("gcpboot", *LIBRARY_LOGGERS):
        logger = logging.getLogger(name)
        saved.append((logger, list(logger.handlers), logger.propagate, logger.level))
    yield
    for logger, handlers, propagate, level in saved:
        for h in logger.handlers:
            if h not in handlers:
                h.close()
        logger.handlers[:] = handlers
        logger.propagate = propagate
        logger.setLevel(level)
