"""Saved metadata handling through the Hasura CLI or the metadata API."""

import json
import shutil
from pathlib import Path
from typing import Callable, List

from graphqltiers.errors import MissingResourceError

METADATA_JSON = "metadata.json"


class MetadataService:
    """Applies and exports a tier's saved metadata directory."""

    def __init__(self, logger, console, which=shutil.which):
        self.logger = logger
        self.console = console
        self.which = which

    def has_cli(self) -> bool:
        return self.which("hasura") is not None

    def _cli_args(self, endpoint: str, admin_secret: str) -> List[str]:
        return ["--endpoint", endpoint, "--admin-secret", admin_secret, "--skip-update-check"]

    def apply(self, client, metadata_dir: Path, base_dir: Path, run_cmd: Callable) -> str:
        """Applies saved metadata; returns the mechanism that was used."""
        metadata_dir = Path(metadata_dir)
        if not metadata_dir.is_dir():
            raise MissingResourceError(f"Metadata directory not found: {metadata_dir}")

        if self.has_cli():
            run_cmd(
                ["hasura", "metadata", "apply"] + self._cli_args(client.endpoint, client.admin_secret),
                check=True,
                capture_output=True,
                cwd=str(base_dir),
            )
            return "hasura-cli"

        self.logger.warning("Hasura CLI not found, applying %s via the metadata API.", METADATA_JSON)
        metadata_file = metadata_dir / METADATA_JSON
        if not metadata_file.is_file():
            raise MissingResourceError(
                f"No metadata files found: install the Hasura CLI or provide {metadata_file}"
            )
        try:
            document = json.loads(metadata_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MissingResourceError(f"Invalid metadata JSON in {metadata_file}: {exc}") from exc

        client.replace_metadata(document)
        return "replace_metadata"

    def export(self, client, base_dir: Path, run_cmd: Callable) -> Path:
        base_dir = Path(base_dir)
        if not base_dir.is_dir():
            raise MissingResourceError(f"Tier directory not found: {base_dir}")

        if self.has_cli():
            run_cmd(
                ["hasura", "metadata", "export"] + self._cli_args(client.endpoint, client.admin_secret),
                check=True,
                capture_output=True,
                cwd=str(base_dir),
            )
            return base_dir / "metadata"

        self.logger.warning("Hasura CLI not found, exporting metadata via the metadata API.")
        target = base_dir / "metadata"
        target.mkdir(parents=True, exist_ok=True)
        metadata_file = target / METADATA_JSON
        metadata_file.write_text(
            json.dumps(client.export_metadata(), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return metadata_file
