"""Tests for the command line entry point."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from governance_voter.__main__ import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    apply_overrides,
    main,
    parse_args,
)
from governance_voter.config import get_settings
from governance_voter.round import RoundState, RoundSummary


class TestParseArgs:
    def test_run_once(self) -> None:
        args = parse_args(["run-once", "--dry-run", "--strategy", "aggressive"])
        assert args.command == "run-once"
        assert args.dry_run is True
        assert args.strategy == "aggressive"
        assert args.verbose is False

    def test_schedule(self) -> None:
        args = parse_args(["-v", "schedule", "--interval", "900", "--max-runs", "2"])
        assert args.command == "schedule"
        assert args.interval == 900
        assert args.max_runs == 2
        assert args.verbose is True

    def test_unknown_strategy_rejected(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["run-once", "--strategy", "reckless"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])


class TestApplyOverrides:
    def test_no_flags_keeps_settings(self, governance_env: None) -> None:
        settings = get_settings()
        assert apply_overrides(settings, parse_args(["run-once"])) is settings

    def test_flags_override_environment(self, governance_env: None) -> None:
        settings = get_settings()

        updated = apply_overrides(settings, parse_args(["run-once", "--dry-run", "--strategy", "balanced"]))

        assert updated.dry_run is True
        assert updated.voting.strategy == "balanced"
        assert settings.dry_run is False
        assert settings.voting.strategy == "conservative"


class TestMain:
    def test_config_prints_redacted_summary(self, governance_env: None, capsys: pytest.CaptureFixture) -> None:
        assert main(["config"]) == EXIT_OK

        output = capsys.readouterr().out
        summary = json.loads(output)
        assert summary["chain"]["rpc_url"] == "https://sepolia.infura.io/v3/***"
        assert summary["wallets"]["node_1_private_key"] == "(set)"
        assert "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80" not in output

    def test_missing_contract_address(self, governance_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ASSET_DAO_CONTRACT_ADDRESS")
        assert main(["run-once"]) == EXIT_CONFIG_ERROR

    def test_missing_node_key(self, governance_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AI_NODE_3_PRIVATE_KEY")
        assert main(["run-once"]) == EXIT_CONFIG_ERROR

    def test_run_once_prints_summary(
        self, governance_env: None, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        voting_round = MagicMock()
        voting_round.run = AsyncMock(return_value=RoundSummary(state=RoundState.DONE, proposals_found=2))
        voting_round.aclose = AsyncMock()
        build = MagicMock(return_value=voting_round)
        monkeypatch.setattr("governance_voter.__main__.build_round", build)

        assert main(["run-once", "--dry-run"]) == EXIT_OK

        summary = json.loads(capsys.readouterr().out)
        assert summary["state"] == "done"
        assert summary["proposals_found"] == 2
        assert build.call_args.args[0].dry_run is True
        voting_round.aclose.assert_awaited_once()
