"""Tests for the command line interface."""

import tempfile
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from fakes import FakeProvider

from rbxsync.cli import Project, main
from rbxsync.models.resources import ResourceKind
from rbxsync.providers.base import RemoteResource

CONFIG = {
    "experience": {"universe_id": 42, "creator": {"type": "user", "id": 7}},
    "passes": {"VIP": {"price": 499}},
    "products": {"Coins": {"price": 99}},
}


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    monkeypatch.setattr(Project, "provider", lambda self, desired, badge_cost=0: fake)
    return fake


def _write_config(tmp, data=CONFIG) -> str:
    path = Path(tmp) / "rbxsync.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_init_writes_template_once():
    with tempfile.TemporaryDirectory() as tmp:
        config = str(Path(tmp) / "rbxsync.yaml")
        runner = CliRunner()

        result = runner.invoke(main, ["--config", config, "init"])
        assert result.exit_code == 0
        assert Path(config).exists()

        result = runner.invoke(main, ["--config", config, "init"])
        assert result.exit_code == 1
        assert "already exists" in result.output


def test_check_reports_invalid_config():
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp, {"passes": {"VIP": {"price": "free"}}})
        result = CliRunner().invoke(main, ["--config", config, "check"])
        assert result.exit_code == 1
        assert "passes.VIP.price must be a non-negative integer" in result.output


def test_sync_then_diff_is_clean(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp)
        runner = CliRunner()

        result = runner.invoke(main, ["--config", config, "sync", "--dry-run"])
        assert result.exit_code == 0
        assert "2 to create" in result.output
        assert provider.mutations() == []

        result = runner.invoke(main, ["--config", config, "sync"])
        assert result.exit_code == 0, result.output
        assert len(provider.mutations()) == 2
        assert (Path(tmp) / "rbxsync.lock.yaml").exists()

        result = runner.invoke(main, ["--config", config, "diff"])
        assert "0 to create, 0 to update, 2 unchanged" in result.output


def test_sync_only_one_kind(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp)
        result = CliRunner().invoke(main, ["--config", config, "sync", "--only", "products"])
        assert result.exit_code == 0
        assert [c[1] for c in provider.mutations()] == [ResourceKind.PRODUCTS]


def test_sync_failure_exits_nonzero(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp)
        provider.fail_on.add(("create", "Coins"))
        result = CliRunner().invoke(main, ["--config", config, "sync"])
        assert result.exit_code == 1
        assert "Sync aborted" in result.output
        lock = yaml.safe_load((Path(tmp) / "rbxsync.lock.yaml").read_text())
        assert list(lock["passes"]) == ["VIP"]
        assert lock["products"] == {}


def test_pull_adopts_remote_resources(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp, {"experience": CONFIG["experience"]})
        provider.add(ResourceKind.BADGES, RemoteResource(remote_id=5, name="Welcome", enabled=True))

        result = CliRunner().invoke(main, ["--config", config, "pull"])
        assert result.exit_code == 0, result.output

        data = yaml.safe_load(Path(config).read_text())
        assert data["badges"]["Welcome"]["enabled"] is True
        lock = yaml.safe_load((Path(tmp) / "rbxsync.lock.yaml").read_text())
        assert lock["badges"]["Welcome"]["remote_id"] == 5


def test_pull_rejects_both_accept_flags(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp)
        result = CliRunner().invoke(main, ["--config", config, "pull", "--accept-remote", "--accept-local"])
        assert result.exit_code == 1
        assert "mutually exclusive" in result.output


def test_rename_moves_config_and_checkpoint(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp)
        runner = CliRunner()
        runner.invoke(main, ["--config", config, "sync"])

        result = runner.invoke(main, ["--config", config, "rename", "passes", "VIP", "vip_pass"])
        assert result.exit_code == 0
        assert "Renamed pass 'VIP' -> 'vip_pass'" in result.output

        data = yaml.safe_load(Path(config).read_text())
        assert data["passes"]["vip_pass"]["name"] == "VIP"
        lock = yaml.safe_load((Path(tmp) / "rbxsync.lock.yaml").read_text())
        assert "vip_pass" in lock["passes"]

        result = runner.invoke(main, ["--config", config, "rename", "passes", "VIP", "x"])
        assert result.exit_code == 1
        assert "not found" in result.output


def test_list_remote(provider):
    with tempfile.TemporaryDirectory() as tmp:
        config = _write_config(tmp)
        provider.add(ResourceKind.PASSES, RemoteResource(remote_id=1, name="VIP", price=499))
        result = CliRunner().invoke(main, ["--config", config, "list", "passes"])
        assert result.exit_code == 0
        assert "VIP" in result.output
        assert "R$499" in result.output
