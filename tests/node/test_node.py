import gc
import itertools

import pytest

from gcpboot.errors import GcpBootError
from gcpboot.node.node import Node

from fakes import FakeExecutor


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def jumpbox(executor):
    return Node("jumpbox", "34.90.0.2", "10.10.0.2", executor=executor)


def test_direct_node_uses_external_ip(jumpbox, executor):
    jumpbox.run_command("root", "uptime")

    assert executor.commands == [(None, "34.90.0.2", "root", "uptime")]


def test_sub_node_is_reached_through_jumpbox(jumpbox, executor):
    pg = jumpbox.sub_node("postgres", "34.90.0.3", "10.10.0.3")
    pg.run_command("root", "uptime")
    pg.copy_file("/tmp/local", "/root/remote")

    assert pg.route() == ("34.90.0.2", "10.10.0.3")
    assert executor.commands == [("34.90.0.2", "10.10.0.3", "root", "uptime")]
    assert executor.copies == [("34.90.0.2", "10.10.0.3", "root", "/tmp/local", "/root/remote")]


def test_jumpbox_chains_are_rejected(jumpbox):
    pg = jumpbox.sub_node("postgres", "", "10.10.0.3")

    with pytest.raises(GcpBootError, match="cannot serve as jumpbox"):
        pg.sub_node("nested", "", "10.10.0.4")


def test_jumpbox_is_held_weakly(executor):
    jb = Node("jumpbox", "34.90.0.2", "10.10.0.2", executor=executor)
    pg = jb.sub_node("postgres", "", "10.10.0.3")
    del jb
    gc.collect()

    with pytest.raises(GcpBootError, match="no longer exists"):
        pg.run_command("root", "uptime")


def test_node_without_executor():
    with pytest.raises(GcpBootError, match="no remote executor"):
        Node("lonely", "1.2.3.4").run_command("root", "true")


def test_check_turns_failures_into_false(jumpbox):
    jumpbox.executor.fail = lambda ip, cmd: "missing" in cmd

    assert jumpbox.check("root", "test -f /present") is True
    assert jumpbox.check("root", "test -f /missing") is False
    assert jumpbox.has_command("oms-cli") is True


def test_run_commands_stops_at_first_failure(jumpbox, executor):
    executor.fail = lambda ip, cmd: cmd == "two"

    with pytest.raises(GcpBootError, match="failed to run command 'two'"):
        jumpbox.run_commands("root", ["one", "two", "three"])

    assert [c[3] for c in executor.commands] == ["one", "two"]


def test_root_login_blocked_by_forced_command_prefix(jumpbox):
    # sshd permits root, but authorized_keys still has the no-port-forwarding prefix
    assert jumpbox.has_root_login_enabled() is False

    jumpbox.executor.fail = lambda ip, cmd: "no-port-forwarding" in cmd and "grep" in cmd
    assert jumpbox.has_root_login_enabled() is True

    jumpbox.executor.fail = lambda ip, cmd: "PermitRootLogin" in cmd
    assert jumpbox.has_root_login_enabled() is False


def test_enable_root_login_runs_as_ubuntu(jumpbox, executor):
    jumpbox.enable_root_login()

    assert {c[2] for c in executor.commands} == {"ubuntu"}
    assert executor.commands[-1][3] == "sudo systemctl restart sshd"


def test_sysctl_configuration(jumpbox, executor):
    jumpbox.configure_inotify_watches()

    assert [c[3] for c in executor.commands] == [
        "echo 'fs.inotify.max_user_watches=1048576' | sudo tee -a /etc/sysctl.conf",
        "sudo sysctl -p",
    ]


def test_wait_ready_times_out(jumpbox, executor):
    executor.unreachable.add("34.90.0.2")
    ticks = itertools.count(0, 10)
    executor.clock = lambda: next(ticks)

    with pytest.raises(GcpBootError, match="timeout waiting for SSH on node jumpbox"):
        jumpbox.wait_ready(30)


def test_wait_ready_through_jumpbox(jumpbox, executor):
    pg = jumpbox.sub_node("postgres", "", "10.10.0.3")
    attempts = []

    def check(jumpbox_ip, target_ip, user):
        attempts.append((jumpbox_ip, target_ip, user))
        if len(attempts) < 3:
            raise OSError("connection refused")

    executor.check_connection = check
    pg.wait_ready(30)

    assert attempts == [("34.90.0.2", "10.10.0.3", "ubuntu")] * 3


def test_to_dict(jumpbox):
    assert jumpbox.to_dict() == {"name": "jumpbox", "external_ip": "34.90.0.2", "internal_ip": "10.10.0.2"}
