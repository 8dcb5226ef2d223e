"""Tests for the command line interface."""

import pytest
import yaml
from typer.testing import CliRunner

from conftest import FakeMounts, make_artifact
from pibackup import cli
from pibackup.config import get_config_template

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, marker):
    lock_dir = tmp_path / "cli-lock"
    lock_dir.mkdir()
    path = tmp_path / "pibackup.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "hostname": "pi",
                "fsck_marker": str(marker),
                "lock_dir": str(lock_dir),
                "settle_seconds": 0,
                "min_artifact_size": 1024,
            }
        )
    )
    return path


@pytest.fixture
def fake_local(monkeypatch, tools):
    class _Tools:
        @staticmethod
        def local(shrink_tool="pishrink", copy_method="dd"):
            return tools

    monkeypatch.setattr(cli, "SystemTools", _Tools)
    return tools


class TestBackupCommand:
    def test_success(self, config_file, fake_local, dest, marker):
        make_artifact(dest, "pi.20250129_020000.img", age_days=10)

        result = runner.invoke(cli.app, ["backup", str(dest), "3", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Backup completed successfully" in result.output
        images = [p.name for p in dest.iterdir()]
        assert len(images) == 1
        assert images[0] != "pi.20250129_020000.img"
        assert not marker.exists()

    def test_not_mounted_exits_nonzero(self, config_file, fake_local, dest):
        fake_local.mounts = FakeMounts(mounted=False)

        result = runner.invoke(cli.app, ["backup", str(dest), "--config", str(config_file)])

        assert result.exit_code == 1
        assert list(dest.iterdir()) == []

    def test_retention_from_argument(self, config_file, fake_local, dest):
        make_artifact(dest, "pi.20250129_020000.img", age_days=10)

        result = runner.invoke(cli.app, ["backup", str(dest), "30", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert (dest / "pi.20250129_020000.img").exists()

    def test_negative_retention_rejected(self, config_file, fake_local, dest):
        result = runner.invoke(cli.app, ["backup", str(dest), "-1", "--config", str(config_file)])
        assert result.exit_code != 0
        assert fake_local.copier.calls == []

    def test_no_resize(self, config_file, fake_local, dest):
        result = runner.invoke(
            cli.app, ["backup", str(dest), "--no-resize", "--config", str(config_file)]
        )
        assert result.exit_code == 0, result.output
        assert fake_local.shrinker.calls == []

    def test_bad_config(self, tmp_path, fake_local, dest):
        bad = tmp_path / "bad.yaml"
        bad.write_text("retention_days: lots\n")
        result = runner.invoke(cli.app, ["backup", str(dest), "--config", str(bad)])
        assert result.exit_code == 1

    def test_log_file(self, config_file, fake_local, dest, tmp_path):
        log_file = tmp_path / "backup.log"
        result = runner.invoke(
            cli.app,
            ["backup", str(dest), "--config", str(config_file), "--log-file", str(log_file)],
        )
        assert result.exit_code == 0, result.output
        content = log_file.read_text()
        assert "[INFO " in content
        assert "Creating Backup" in content


class TestListCommand:
    def test_lists_backups(self, config_file, dest):
        make_artifact(dest, "pi.20250129_020000.img", age_days=10)
        make_artifact(dest, "other.20250129_020000.img", age_days=10)

        result = runner.invoke(cli.app, ["list", str(dest), "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "pi.20250129_020000.img" in result.output
        assert "other." not in result.output
        assert "1 backup(s)" in result.output

    def test_empty(self, config_file, dest):
        result = runner.invoke(cli.app, ["list", str(dest), "--config", str(config_file)])
        assert result.exit_code == 0
        assert "No backups" in result.output

    def test_missing_destination(self, config_file, tmp_path):
        result = runner.invoke(
            cli.app, ["list", str(tmp_path / "gone"), "--config", str(config_file)]
        )
        assert result.exit_code == 1


class TestInitConfigCommand:
    def test_writes_template(self, tmp_path):
        path = tmp_path / "pibackup.yaml"
        result = runner.invoke(cli.app, ["init-config", str(path)])
        assert result.exit_code == 0
        assert path.read_text() == get_config_template()

    def test_keeps_existing_when_declined(self, tmp_path):
        path = tmp_path / "pibackup.yaml"
        path.write_text("retention_days: 9\n")
        result = runner.invoke(cli.app, ["init-config", str(path)], input="n\n")
        assert result.exit_code == 0
        assert path.read_text() == "retention_days: 9\n"


class TestFormatting:
    def test_format_duration(self):
        assert cli.format_duration(45) == "45s"
        assert cli.format_duration(725) == "12m 5s"
        assert cli.format_duration(7260) == "2h 1m"

    def test_format_size(self):
        assert cli.format_size(512) == "512B"
        assert cli.format_size(1536) == "1.5K"
        assert cli.format_size(500 * 1024 * 1024) == "500M"
        assert cli.format_size(15 * 1024**3) == "15G"


class TestSystemBackupEntryPoint:
    def test_positional_synopsis(self, config_file, fake_local, dest, monkeypatch):
        make_artifact(dest, "pi.20250129_020000.img", age_days=10)
        monkeypatch.setattr(
            "sys.argv", ["system-backup", str(dest), "3", "--config", str(config_file)]
        )

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 0
        assert not (dest / "pi.20250129_020000.img").exists()
        assert len(list(dest.iterdir())) == 1

    def test_failure_exit_code(self, config_file, fake_local, dest, monkeypatch):
        fake_local.mounts = FakeMounts(mounted=False)
        monkeypatch.setattr("sys.argv", ["system-backup", str(dest), "--config", str(config_file)])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1
        assert list(dest.iterdir()) == []
