import io
import logging

import paramiko
import pytest

from gcpboot.errors import AuthenticationError, GcpBootError, RemoteCommandError
from gcpboot.remote.ssh import SSHRemoteExecutor

# ----------------- Fakes for Paramiko -----------------

class World:
    """Shared log and behaviour for every fake client a test creates."""

    def __init__(self):
        self.log = []
        self.responses = {}
        self.rejected = set()
        self.rejected_on = {}
        self.unreachable = set()


class FakeChannel:
    def __init__(self, world, host):
        self.world = world
        self.host = host
        self._out = ("", "", 0)
        self.combined = False

    def request_forward_agent(self, handler):
        self.world.log.append(("forward_agent", self.host))
        return True

    def update_environment(self, env):
        self.world.log.append(("env", self.host, dict(env)))

    def set_combine_stderr(self, combine):
        self.combined = combine

    def exec_command(self, command):
        self.world.log.append(("exec", self.host, command))
        self._out = self.world.responses.get(command, ("", "", 0))

    def makefile(self, mode):
        out, err = self._out[0], self._out[1]
        return self._reader(out + err if self.combined else out)

    def _reader(self, text):
        for line in io.BytesIO(text.encode()):
            self.world.log.append(("read", self.host, line.decode()))
            yield line

    def recv_exit_status(self):
        return self._out[2]

    def close(self):
        pass


class FakeTransport:
    def __init__(self, world, host):
        self.world = world
        self.host = host

    def open_session(self, timeout=None):
        return FakeChannel(self.world, self.host)

    def open_channel(self, kind, dest, src):
        self.world.log.append(("open_channel", self.host, kind, dest, src))
        return FakeTunnel(dest)


class FakeTunnel:
    def __init__(self, dest):
        self.dest = dest
        self.closed = False

    def close(self):
        self.closed = True


class FakeSFTP:
    def __init__(self, world, host):
        self.world = world
        self.host = host

    def put(self, local, remote):
        self.world.log.append(("put", self.host, local, remote))

    def close(self):
        pass


class FakeSSHClient:
    def __init__(self, world):
        self.world = world
        self.host = None
        self.sock = None

    def load_host_keys(self, path):
        self.world.log.append(("known_hosts", path))

    def set_missing_host_key_policy(self, policy):
        pass

    def connect(self, **kw):
        sock = kw["sock"]
        self.world.log.append(
            ("connect", kw["hostname"], kw["username"], kw["pkey"], None if sock is None else ("tunnel", sock.dest))
        )
        if kw["hostname"] in self.world.unreachable:
            raise OSError("no route to host")
        if sock is not None and sock.closed:
            raise EOFError()
        self.sock = sock
        if kw["pkey"] in self.world.rejected or kw["pkey"] in self.world.rejected_on.get(kw["hostname"], ()):
            raise paramiko.AuthenticationException("denied")
        self.host = kw["hostname"]

    def get_transport(self):
        return FakeTransport(self.world, self.host)

    def open_sftp(self):
        return FakeSFTP(self.world, self.host)

    def close(self):
        self.world.log.append(("close", self.host))
        if self.sock is not None:
            self.sock.close()


class FakeCredentials:
    def __init__(self, signers): self._signers = signers
    def signers(self): return list(self._signers)


@pytest.fixture
def world():
    return World()


@pytest.fixture
def make_executor(world, tmp_path):
    def _make(signers=("key-a",), **kw):
        return SSHRemoteExecutor(
            FakeCredentials(list(signers)),
            known_hosts=tmp_path / "ssh" / "known_hosts",
            client_factory=lambda: FakeSSHClient(world),
            **kw,
        )
    return _make


def _entries(world, kind):
    return [e for e in world.log if e[0] == kind]


# ----------------- tests -----------------

def test_direct_command(world, make_executor, monkeypatch):
    monkeypatch.delenv("OMS_PORTAL_API_KEY", raising=False)
    make_executor().run_command(None, "34.90.0.2", "root", "uptime")

    assert _entries(world, "connect") == [("connect", "34.90.0.2", "root", "key-a", None)]
    assert _entries(world, "exec") == [("exec", "34.90.0.2", "uptime")]
    assert _entries(world, "forward_agent") == [("forward_agent", "34.90.0.2")]
    assert _entries(world, "env") == []
    assert _entries(world, "close") == [("close", "34.90.0.2")]


def test_command_through_jumpbox(world, make_executor):
    make_executor().run_command("34.90.0.2", "10.10.0.3", "root", "hostname")

    assert _entries(world, "connect") == [
        ("connect", "34.90.0.2", "ubuntu", "key-a", None),
        ("connect", "10.10.0.3", "root", "key-a", ("tunnel", ("10.10.0.3", 22))),
    ]
    assert _entries(world, "open_channel") == [
        ("open_channel", "34.90.0.2", "direct-tcpip", ("10.10.0.3", 22), ("127.0.0.1", 0))
    ]
    assert _entries(world, "exec") == [("exec", "10.10.0.3", "hostname")]
    # inner session closes before the jumpbox connection
    assert _entries(world, "close") == [("close", "10.10.0.3"), ("close", "34.90.0.2")]


def test_failed_command_raises_with_stderr(world, make_executor):
    world.responses["false"] = ("", "boom\n", 3)

    with pytest.raises(RemoteCommandError) as ei:
        make_executor().run_command(None, "34.90.0.2", "root", "false")

    assert ei.value.exit_status == 3
    assert ei.value.stderr == "boom\n"
    assert "boom" in str(ei.value)


def test_next_signer_is_tried_after_auth_failure(world, make_executor):
    world.rejected.add("key-a")
    make_executor(signers=("key-a", "key-b")).run_command(None, "34.90.0.2", "root", "true")

    assert [e[3] for e in _entries(world, "connect")] == ["key-a", "key-b"]


def test_all_signers_rejected(world, make_executor):
    world.rejected.update({"key-a", "key-b"})

    with pytest.raises(AuthenticationError, match="authentication failed for root@34.90.0.2"):
        make_executor(signers=("key-a", "key-b")).run_command(None, "34.90.0.2", "root", "true")


def test_unreachable_jumpbox(world, make_executor):
    world.unreachable.add("34.90.0.2")

    with pytest.raises(GcpBootError, match="failed to connect to jumpbox 34.90.0.2"):
        make_executor().check_connection("34.90.0.2", "10.10.0.3", "ubuntu")


def test_known_hosts_file_is_created(world, make_executor, tmp_path):
    make_executor().check_connection(None, "34.90.0.2", "ubuntu")

    path = tmp_path / "ssh" / "known_hosts"
    assert path.is_file()
    assert _entries(world, "known_hosts") == [("known_hosts", str(path))]


def test_copy_file(world, make_executor, tmp_path):
    local = tmp_path / "config.yaml"
    local.write_text("a: 1\n")

    make_executor().copy_file("34.90.0.2", "10.10.0.3", "root", str(local), "/etc/codesphere/config.yaml")

    assert ("exec", "10.10.0.3", "mkdir -p /etc/codesphere") in world.log
    assert _entries(world, "put") == [("put", "10.10.0.3", str(local), "/etc/codesphere/config.yaml")]


def test_copy_missing_file(make_executor, tmp_path):
    with pytest.raises(GcpBootError, match="failed to open source file"):
        make_executor().copy_file(None, "34.90.0.2", "root", str(tmp_path / "absent"), "/root/x")


def test_portal_api_key_is_sent(world, make_executor, monkeypatch):
    monkeypatch.setenv("OMS_PORTAL_API_KEY", "portal-key")

    make_executor().run_command(None, "34.90.0.2", "root", "oms-cli version")

    assert _entries(world, "env") == [("env", "34.90.0.2", {"OMS_PORTAL_API_KEY": "portal-key"})]


def test_agent_forwarding_can_be_disabled(world, make_executor):
    make_executor(forward_agent=False).run_command(None, "34.90.0.2", "root", "true")

    assert _entries(world, "forward_agent") == []


def test_next_signer_is_tried_through_the_jumpbox(world, make_executor):
    # the agent holds an unrelated key ahead of the cluster key
    world.rejected_on["10.10.0.3"] = {"key-a"}

    make_executor(signers=("key-a", "key-b")).run_command("34.90.0.2", "10.10.0.3", "root", "hostname")

    assert [e[1:4] for e in _entries(world, "connect")] == [
        ("34.90.0.2", "ubuntu", "key-a"),
        ("10.10.0.3", "root", "key-a"),
        ("10.10.0.3", "root", "key-b"),
    ]
    assert len(_entries(world, "open_channel")) == 2
    assert _entries(world, "exec") == [("exec", "10.10.0.3", "hostname")]


def test_output_is_logged_while_it_arrives(world, make_executor):
    world.responses["oms-cli install codesphere"] = ("step 1\nstep 2\n", "warn\n", 0)

    class Recorder(logging.Handler):
        def emit(self, record):
            world.log.append(("log", record.levelno, record.getMessage()))

    logger = logging.getLogger("gcpboot")
    handler, level = Recorder(), logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        make_executor(quiet=False).run_command(None, "34.90.0.2", "root", "oms-cli install codesphere")
    finally:
        logger.removeHandler(handler)
        logger.setLevel(level)

    streamed = [e for e in world.log if e[0] == "read" or (e[0] == "log" and e[1] == logging.INFO)]
    assert streamed == [
        ("read", "34.90.0.2", "step 1\n"),
        ("log", logging.INFO, "[34.90.0.2] step 1"),
        ("read", "34.90.0.2", "step 2\n"),
        ("log", logging.INFO, "[34.90.0.2] step 2"),
        ("read", "34.90.0.2", "warn\n"),
        ("log", logging.INFO, "[34.90.0.2] warn"),
    ]


def test_failed_command_keeps_the_output_tail(world, make_executor):
    world.responses["make"] = ("".join(f"line {i}\n" for i in range(30)), "", 2)

    with pytest.raises(RemoteCommandError) as ei:
        make_executor().run_command(None, "34.90.0.2", "root", "make")

    assert ei.value.stderr.splitlines() == [f"line {i}" for i in range(10, 30)]
