import subprocess
from pathlib import Path

import pytest

from graphqltiers.errors import MissingResourceError
from graphqltiers.services.database import DatabaseService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


URL = "postgresql://member:pw@localhost:7103/member"


def _service():
    return DatabaseService(logger=DummyLogger(), console=DummyConsole())


def test_test_connection_reports_failure():
    def failing_run_cmd(cmd, check=False, capture_output=True):
        return subprocess.CompletedProcess(cmd, 2, stdout="", stderr="connection refused")

    assert _service().test_connection(URL, failing_run_cmd) is False


def test_missing_database_url_raises():
    with pytest.raises(MissingResourceError, match="No database URL configured"):
        _service().test_connection(None, lambda *_args, **_kwargs: None)


def test_run_seed_files_applies_sql_in_order(tmp_path):
    (tmp_path / "02_data.sql").write_text("INSERT 1;", encoding="utf-8")
    (tmp_path / "01_schema.sql").write_text("CREATE 1;", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("skip", encoding="utf-8")
    applied = []

    def fake_run_cmd(cmd, check=False, capture_output=True):
        applied.append(cmd[-1])
        assert "ON_ERROR_STOP=1" in cmd
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    count = _service().run_seed_files(URL, tmp_path, fake_run_cmd)

    assert count == 2
    assert [Path(path).name for path in applied] == ["01_schema.sql", "02_data.sql"]
