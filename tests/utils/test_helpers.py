import shlex

from gcpboot.utils.helpers import q, truncate


def test_q_leaves_plain_paths_alone():
    assert q("/etc/codesphere/config.yaml") == "/etc/codesphere/config.yaml"


def test_q_survives_spaces_and_quotes():
    path = "/root/it's a dir/$HOME"

    assert shlex.split(f"test -f {q(path)}") == ["test", "-f", path]


def test_truncate():
    assert truncate("  short  ") == "short"
    assert truncate("x" * 10, limit=4) == "xxxx..."
