"""Tests for the account management CLI."""

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import orjson
import pytest
from typer.testing import CliRunner

from claude_multi_auth import __version__
from claude_multi_auth.auth.oauth.token_exchange import TokenResponse
from claude_multi_auth.cli.main import app
from claude_multi_auth.config.settings import get_settings
from claude_multi_auth.rotation.accounts import Account, AuthConfig, now_ms
from tests.factories import ONE_HOUR


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    path = tmp_path / "multi-auth.json"
    monkeypatch.setenv("MULTI_AUTH_CONFIG_FILE", str(path))
    get_settings.cache_clear()
    yield path
    get_settings.cache_clear()


@pytest.fixture
def runner() -> Iterator[CliRunner]:
    with patch("claude_multi_auth.cli.main.setup_logging"):
        yield CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture
def write_config(config_file: Path) -> Callable[[AuthConfig], None]:
    def _write(config: AuthConfig) -> None:
        config_file.write_bytes(orjson.dumps(config.to_dict()))

    return _write


def _saved(config_file: Path) -> dict:
    return json.loads(config_file.read_text())


@pytest.mark.unit
class TestReadCommands:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize("command", ["list", "info", "status"])
    def test_no_accounts(self, runner: CliRunner, config_file: Path, command: str) -> None:
        result = runner.invoke(app, [command])

        assert result.exit_code == 0
        assert "No accounts configured" in result.output

    def test_list_marks_current(
        self,
        runner: CliRunner,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        two_account_config.current_index = 1
        write_config(two_account_config)

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "Personal" in result.output
        assert "Work (current)" in result.output
        assert "Auto failover" in result.output

    def test_info_never_prints_tokens(
        self,
        runner: CliRunner,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        write_config(two_account_config)

        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "account-work" in result.output
        assert "access-work" not in result.output
        assert "refresh-work" not in result.output

    def test_status_summary(
        self,
        runner: CliRunner,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        two_account_config.accounts[1].rate_limited_until = now_ms() + ONE_HOUR
        write_config(two_account_config)

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Current Account" in result.output
        assert "1 account(s) are currently rate-limited" in result.output

    def test_invalid_json_fails_cleanly(self, runner: CliRunner, config_file: Path) -> None:
        config_file.write_text("{broken")

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output


@pytest.mark.unit
class TestEditCommands:
    def test_rename(
        self,
        runner: CliRunner,
        config_file: Path,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        write_config(two_account_config)

        result = runner.invoke(app, ["rename", "2", "Office"])

        assert result.exit_code == 0
        assert [a["label"] for a in _saved(config_file)["accounts"]] == ["Personal", "Office"]

    def test_switch(
        self,
        runner: CliRunner,
        config_file: Path,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        write_config(two_account_config)

        result = runner.invoke(app, ["switch", "2"])

        assert result.exit_code == 0
        assert _saved(config_file)["currentAccountIndex"] == 1

    @pytest.mark.parametrize("command", ["switch", "rename", "remove", "clear-rate-limit"])
    def test_invalid_number(
        self,
        runner: CliRunner,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
        command: str,
    ) -> None:
        write_config(two_account_config)
        args = [command, "5"] + (["Name"] if command == "rename" else [])

        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert "Invalid account number" in result.output

    def test_remove_current_moves_index(
        self,
        runner: CliRunner,
        config_file: Path,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        two_account_config.current_index = 1
        write_config(two_account_config)

        result = runner.invoke(app, ["remove", "2"])

        assert result.exit_code == 0
        saved = _saved(config_file)
        assert [a["label"] for a in saved["accounts"]] == ["Personal"]
        assert saved["currentAccountIndex"] == 0

    def test_remove_last_account_refused(
        self,
        runner: CliRunner,
        config_file: Path,
        write_config: Callable[[AuthConfig], None],
        make_account: Callable[..., Account],
    ) -> None:
        write_config(AuthConfig(accounts=[make_account("Only")]))

        result = runner.invoke(app, ["remove", "1"])

        assert result.exit_code == 1
        assert "Cannot remove the last account" in result.output
        assert len(_saved(config_file)["accounts"]) == 1

    def test_clear_rate_limit(
        self,
        runner: CliRunner,
        config_file: Path,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
    ) -> None:
        two_account_config.accounts[0].rate_limited_until = now_ms() + ONE_HOUR
        write_config(two_account_config)

        result = runner.invoke(app, ["clear-rate-limit", "1"])

        assert result.exit_code == 0
        assert _saved(config_file)["accounts"][0]["rateLimitedUntil"] is None

    @pytest.mark.parametrize(("state", "expected"), [("off", False), ("on", True)])
    def test_failover_toggle(
        self,
        runner: CliRunner,
        config_file: Path,
        write_config: Callable[[AuthConfig], None],
        two_account_config: AuthConfig,
        state: str,
        expected: bool,
    ) -> None:
        two_account_config.auto_failover = not expected
        write_config(two_account_config)

        result = runner.invoke(app, ["failover", state])

        assert result.exit_code == 0
        assert _saved(config_file)["autoFailover"] is expected

    def test_migrate_legacy_file(self, runner: CliRunner, config_file: Path) -> None:
        config_file.write_text(
            json.dumps({"type": "oauth", "access": "a", "refresh": "r", "expires": 1})
        )

        result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 0
        saved = _saved(config_file)
        assert saved["type"] == "multi-oauth"
        assert saved["accounts"][0]["label"] == "Migrated Account"


@pytest.mark.unit
class TestOAuthCommands:
    @patch("claude_multi_auth.cli.commands.accounts.exchange_code", new_callable=AsyncMock)
    def test_add_account(
        self,
        mock_exchange: AsyncMock,
        runner: CliRunner,
        config_file: Path,
    ) -> None:
        mock_exchange.return_value = TokenResponse(
            access_token="new-access", refresh_token="new-refresh", expires_in=3600
        )

        result = runner.invoke(app, ["add", "Laptop", "--mode", "console"], input="abc#xyz\n")

        assert result.exit_code == 0, result.output
        assert "console.anthropic.com" in result.output
        assert mock_exchange.await_args.args[0] == "abc#xyz"
        saved = _saved(config_file)
        assert saved["accounts"][0]["label"] == "Laptop"
        assert saved["accounts"][0]["mode"] == "console"
        assert saved["accounts"][0]["access"] == "new-access"

    def test_add_rejects_unknown_mode(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(app, ["add", "--mode", "team"])

        assert result.exit_code == 1
        assert "Invalid mode" in result.output
        assert not config_file.exists()

    @patch("claude_multi_auth.cli.commands.accounts.create_api_key", new_callable=AsyncMock)
    def test_create_api_key_uses_current_account(
        self,
        mock_create: AsyncMock,
        runner: CliRunner,
        write_config: Callable[[AuthConfig], None],
        make_account: Callable[..., Account],
    ) -> None:
        mock_create.return_value = "sk-ant-api03-new"
        write_config(
            AuthConfig(
                accounts=[
                    make_account("A", expires_at=now_ms() + ONE_HOUR),
                    make_account("B", expires_at=now_ms() + ONE_HOUR),
                ],
                current_index=1,
            )
        )

        result = runner.invoke(app, ["create-api-key"])

        assert result.exit_code == 0, result.output
        assert "sk-ant-api03-new" in result.output
        assert mock_create.await_args.args[0] == "access-b"

    def test_create_api_key_refuses_expired_token(
        self,
        runner: CliRunner,
        write_config: Callable[[AuthConfig], None],
        make_account: Callable[..., Account],
    ) -> None:
        create = MagicMock()
        write_config(AuthConfig(accounts=[make_account("A", expires_at=now_ms() - 1)]))

        with patch("claude_multi_auth.cli.commands.accounts.create_api_key", create):
            result = runner.invoke(app, ["create-api-key", "1"])

        assert result.exit_code == 1
        assert "expired" in result.output
        create.assert_not_called()
