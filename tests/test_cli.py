from pathlib import Path

from click.testing import CliRunner

import graphqltiers.cli as cli_module
from graphqltiers.core import TierToolkit


def fake_toolkit(monkeypatch, exit_code=0):
    captured = {"runs": []}

    class FakeToolkit:
        def __init__(self, **kwargs):
            captured.update(kwargs)

        def run(self, operation, *args, **kwargs):
            captured["runs"].append((operation, args, kwargs))
            return exit_code

    monkeypatch.setattr(cli_module, "TierToolkit", FakeToolkit)
    return captured


def test_cli_dispatches_tier_command(tmp_path, monkeypatch):
    captured = fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["--root", str(tmp_path), "refresh", "member", "development"])

    assert result.exit_code == 0
    assert captured["runs"] == [("refresh", ("member", "development"), {})]
    assert captured["root"] == str(tmp_path)
    assert captured["force"] is False
    assert captured["timeout"] == 30.0


def test_cli_propagates_operation_exit_code(monkeypatch):
    fake_toolkit(monkeypatch, exit_code=66)

    result = CliRunner().invoke(cli_module.main, ["verify-tables", "admin", "production"])

    assert result.exit_code == 66


def test_cli_unknown_tier_exits_64(monkeypatch):
    captured = fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["deploy", "guest", "development"])

    assert result.exit_code == 64
    assert "Unknown tier" in result.output or "guest" in result.output
    assert captured["runs"] == []


def test_cli_unknown_environment_exits_64(monkeypatch):
    fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["deploy", "admin", "staging"])

    assert result.exit_code == 64


def test_cli_missing_argument_exits_64(monkeypatch):
    captured = fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["refresh", "admin"])

    assert result.exit_code == 64
    assert captured["runs"] == []


def test_cli_unknown_command_exits_64(monkeypatch):
    fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["teleport", "admin", "development"])

    assert result.exit_code == 64


def test_cli_uses_config_and_allows_cli_override(tmp_path, monkeypatch):
    config_file = tmp_path / "tiers.yml"
    config_file.write_text(
        f"root: {tmp_path / 'workspace'}\n" "timeout: 45\n" "force: true\n",
        encoding="utf-8",
    )
    captured = fake_toolkit(monkeypatch)

    result = CliRunner().invoke(
        cli_module.main,
        [
            "--config",
            str(config_file),
            "--timeout",
            "5",
            "--set",
            "HASURA_GRAPHQL_ENDPOINT=http://localhost:9999",
            "track-tables",
            "operator",
            "development",
        ],
    )

    assert result.exit_code == 0
    assert captured["root"] == str(tmp_path / "workspace")
    assert captured["timeout"] == 5.0
    assert captured["force"] is True
    assert captured["overrides"] == {"HASURA_GRAPHQL_ENDPOINT": "http://localhost:9999"}


def test_cli_uses_default_config_file_when_present(tmp_path, monkeypatch):
    (tmp_path / ".graphqltiers.yml").write_text("timeout: 12\n", encoding="utf-8")
    captured = fake_toolkit(monkeypatch)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["report", "member", "development"])

    assert result.exit_code == 0
    assert captured["timeout"] == 12.0
    assert Path(captured["root"]).resolve() == tmp_path.resolve()


def test_cli_rejects_unknown_config_key(tmp_path, monkeypatch):
    config_file = tmp_path / "tiers.yml"
    config_file.write_text("tier: admin\n", encoding="utf-8")
    fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["--config", str(config_file), "report", "admin", "development"])

    assert result.exit_code == 64


def test_cli_rejects_malformed_override(monkeypatch):
    fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["--set", "NOEQUALS", "report", "admin", "development"])

    assert result.exit_code == 64


def test_cli_passes_command_flags(monkeypatch):
    captured = fake_toolkit(monkeypatch)
    runner = CliRunner()

    runner.invoke(cli_module.main, ["drop", "admin", "development", "--volumes"])
    runner.invoke(cli_module.main, ["status-all", "--format", "json"])
    runner.invoke(cli_module.main, ["test-health"])
    runner.invoke(cli_module.main, ["compare-tables", "member"])
    runner.invoke(cli_module.main, ["version", "--update"])

    assert captured["runs"] == [
        ("drop", ("admin", "development"), {"remove_volumes": True}),
        ("status-all", (), {"output_format": "json"}),
        ("test-health", ("all", "development"), {}),
        ("compare-tables", ("member",), {}),
        ("version", (None,), {"update": True, "as_json": False}),
    ]


def test_cli_deploy_flags_reach_toolkit(monkeypatch):
    captured = fake_toolkit(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["deploy", "member", "production", "--no-track", "--force"])

    assert result.exit_code == 0
    assert captured["no_track"] is True
    assert captured["force"] is True


def test_cli_production_purge_without_force_exits_77(tmp_path, monkeypatch):
    config_dir = tmp_path / "member-graphql-api" / "config"
    config_dir.mkdir(parents=True)
    (config_dir / "production.env").write_text("HASURA_GRAPHQL_ADMIN_SECRET=secret\n", encoding="utf-8")

    def no_network(*args, **kwargs):
        raise AssertionError("no external call expected before confirmation")

    monkeypatch.setattr(TierToolkit, "client", no_network)
    monkeypatch.setattr(TierToolkit, "_run_cmd", no_network)

    result = CliRunner().invoke(
        cli_module.main,
        ["--root", str(tmp_path), "purge-test-data", "member", "production"],
    )

    assert result.exit_code == 77
