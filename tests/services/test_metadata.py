import json
import subprocess

import pytest

from graphqltiers.errors import MissingResourceError
from graphqltiers.services.metadata import MetadataService


class DummyLogger:
    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def _service(cli_available):
    return MetadataService(
        logger=DummyLogger(),
        console=DummyConsole(),
        which=lambda _name: "/usr/local/bin/hasura" if cli_available else None,
    )


def test_apply_uses_hasura_cli_when_available(tmp_path, fake_hasura):
    (tmp_path / "metadata").mkdir()
    captured = {}

    def fake_run_cmd(cmd, check=False, capture_output=True, cwd=None):
        captured["cmd"] = cmd
        captured["cwd"] = cwd
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    mechanism = _service(True).apply(fake_hasura, tmp_path / "metadata", tmp_path, fake_run_cmd)

    assert mechanism == "hasura-cli"
    assert captured["cmd"][:3] == ["hasura", "metadata", "apply"]
    assert "--endpoint" in captured["cmd"] and fake_hasura.endpoint in captured["cmd"]
    assert captured["cwd"] == str(tmp_path)


def test_apply_falls_back_to_replace_metadata(tmp_path, fake_hasura):
    metadata_dir = tmp_path / "metadata"
    metadata_dir.mkdir()
    document = {"version": 3, "sources": [{"name": "default", "tables": [{"table": {"schema": "public", "name": "settings"}}]}]}
    (metadata_dir / "metadata.json").write_text(json.dumps(document), encoding="utf-8")

    mechanism = _service(False).apply(fake_hasura, metadata_dir, tmp_path, None)

    assert mechanism == "replace_metadata"
    assert fake_hasura.tracked == {"public.settings"}


def test_apply_without_cli_or_json_raises(tmp_path, fake_hasura):
    (tmp_path / "metadata").mkdir()

    with pytest.raises(MissingResourceError, match="No metadata files found"):
        _service(False).apply(fake_hasura, tmp_path / "metadata", tmp_path, None)


def test_apply_with_invalid_json_raises_resource_error(tmp_path, fake_hasura):
    metadata_dir = tmp_path / "metadata"
    metadata_dir.mkdir()
    (metadata_dir / "metadata.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(MissingResourceError, match="Invalid metadata JSON") as excinfo:
        _service(False).apply(fake_hasura, metadata_dir, tmp_path, None)

    assert excinfo.value.exit_code == 66
    assert "replace_metadata" not in fake_hasura.calls


def test_export_without_cli_writes_metadata_json(tmp_path, fake_hasura):
    fake_hasura.tracked = {"public.settings"}

    path = _service(False).export(fake_hasura, tmp_path, None)

    assert path == tmp_path / "metadata" / "metadata.json"
    exported = json.loads(path.read_text(encoding="utf-8"))
    assert exported["sources"][0]["tables"][0]["table"]["name"] == "settings"
