"""PostgreSQL access through psql for graphqltiers."""

from pathlib import Path
from typing import Callable, List, Optional

from graphqltiers.errors import MissingResourceError


class DatabaseService:
    """Runs psql against a tier database: connection checks and seed files."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    @staticmethod
    def _require_url(database_url: Optional[str]) -> str:
        if not database_url:
            raise MissingResourceError(
                "No database URL configured. Set HASURA_GRAPHQL_DATABASE_URL or DATABASE_URL "
                "in the environment file."
            )
        return database_url

    def test_connection(self, database_url: Optional[str], run_cmd: Callable) -> bool:
        url = self._require_url(database_url)
        result = run_cmd(["psql", url, "-c", "SELECT 1"], check=False, capture_output=True)
        if result.returncode != 0:
            self.logger.debug("psql connection check failed: %s", (result.stderr or "").strip())
            return False
        return True

    def seed_files(self, seed_dir: Path) -> List[Path]:
        seed_dir = Path(seed_dir)
        if not seed_dir.is_dir():
            raise MissingResourceError(f"Seed data directory not found: {seed_dir}")
        return sorted(seed_dir.glob("*.sql"))

    def run_seed_files(self, database_url: Optional[str], seed_dir: Path, run_cmd: Callable) -> int:
        url = self._require_url(database_url)
        files = self.seed_files(seed_dir)
        if not files:
            self.console.print(f"[yellow]No seed files found in {seed_dir}.[/yellow]")
            return 0

        for sql_file in files:
            self.console.print(f"[blue]Applying seed file {sql_file.name}...[/blue]")
            run_cmd(
                ["psql", url, "-v", "ON_ERROR_STOP=1", "-f", str(sql_file)],
                check=True,
                capture_output=True,
            )
        self.console.print(f"[green]Applied {len(files)} seed file(s).[/green]")
        return len(files)
