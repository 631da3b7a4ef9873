"""Unit tests for CLI argument parsing and command dispatch."""
from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from flashliq.cli import build_parser, main
from flashliq.models import ScanReport


class TestBuildParser:
    def test_start_command(self) -> None:
        args = build_parser().parse_args(["start"])
        assert args.command == "start"
        assert args.dry_run is False

    def test_start_dry_run(self) -> None:
        args = build_parser().parse_args(["start", "--dry-run"])
        assert args.dry_run is True

    @pytest.mark.parametrize("command", ["scan", "test", "config"])
    def test_simple_commands(self, command: str) -> None:
        assert build_parser().parse_args([command]).command == command

    def test_config_flag(self) -> None:
        args = build_parser().parse_args(["--config", "/tmp/c.yaml", "scan"])
        assert args.config == "/tmp/c.yaml"

    def test_log_level_flag(self) -> None:
        args = build_parser().parse_args(["--log-level", "DEBUG", "scan"])
        assert args.log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "TRACE", "scan"])

    def test_no_command(self) -> None:
        assert build_parser().parse_args([]).command is None


class TestMain:
    def test_no_command_exits_nonzero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "argv", ["flashliq"])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1

    def test_config_command_prints_summary(
        self,
        sample_yaml_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr(
            sys, "argv", ["flashliq", "--config", str(sample_yaml_path), "config"]
        )
        main()
        out = capsys.readouterr().out
        assert "Poll interval: 30s" in out
        assert "Mode: DRY-RUN (simulation)" in out

    def test_missing_config_exits_nonzero(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            sys, "argv", ["flashliq", "--config", str(tmp_path / "nope.yaml"), "config"]
        )
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1

    def test_test_command_requires_wallet(
        self, sample_yaml_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            sys, "argv", ["flashliq", "--config", str(sample_yaml_path), "test"]
        )
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1

    def test_scan_command(
        self,
        sample_yaml_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr(
            sys, "argv", ["flashliq", "--config", str(sample_yaml_path), "scan"]
        )
        report = ScanReport(skipped=4, task_errors={"Kamino": "RPC down"})
        with patch(
            "flashliq.services.bot.Bot.scan_once",
            new_callable=AsyncMock,
            return_value=(report, []),
        ):
            main()

        out = capsys.readouterr().out
        assert "Liquidation opportunities: 0" in out
        assert "Skipped: 4" in out
        assert "Kamino scan failed: RPC down" in out
