import sys
import types

import pytest

from conftest import FakeTreeCache
from zkfuse import main as main_module
from zkfuse.filesystem import FSOperations, LifecycleState
from zkfuse.mirror import TreeMirror


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(main_module, "setup_logging", lambda *args: None)


@pytest.fixture
def mounts(monkeypatch):
    """Replace the fusepy-backed mount module with one that records calls."""
    calls = []
    module = types.ModuleType("zkfuse.filesystem.fuse_interface")
    module.mount = lambda fs, mountpoint, **kwargs: calls.append((fs, mountpoint, kwargs))
    monkeypatch.setitem(sys.modules, "zkfuse.filesystem.fuse_interface", module)
    return calls


@pytest.fixture
def fake_filesystem(zk, monkeypatch):
    built = []

    def build(config):
        fs = FSOperations(zk, TreeMirror(zk, cache_factory=FakeTreeCache))
        built.append(fs)
        return fs

    monkeypatch.setattr(main_module, "build_filesystem", build)
    return built


def test_both_arguments_required():
    with pytest.raises(SystemExit) as exc:
        main_module.parse_args(["zk:2181"])
    assert exc.value.code != 0


def test_flags_parsed():
    args = main_module.parse_args(["zk:2181", "/mnt", "--mirror", "passthrough", "--background", "--debug"])
    assert args.mirror == "passthrough"
    assert args.foreground is False
    assert args.debug is True
    assert args.allow_other is None


def test_bad_config_exits_with_usage_error(tmp_path):
    assert main_module.main(["zk:2181", "/mnt", "--config", str(tmp_path / "missing.json")]) == 2


def test_priming_failure_aborts_before_mount(zk, fake_filesystem, mounts):
    zk.reachable = False
    assert main_module.main(["zk:2181", "/mnt"]) == 1
    assert mounts == []


def test_mounts_primed_filesystem_and_destroys_after(zk, fake_filesystem, mounts):
    assert main_module.main(["zk:2181", "/mnt", "--allow-other"]) == 0
    (fs, mountpoint, kwargs), = mounts
    assert fs is fake_filesystem[0]
    assert mountpoint == "/mnt"
    assert kwargs == {"foreground": True, "allow_other": True, "debug": False}
    assert fs.state is LifecycleState.STOPPED
    assert zk.closed


def test_background_mount_defers_priming(zk, fake_filesystem, mounts):
    assert main_module.main(["zk:2181", "/mnt", "--background"]) == 0
    assert not zk.started
    assert mounts[0][2]["foreground"] is False
