"""CSV test dataset loading and purging through GraphQL mutations."""

import csv
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from graphqltiers.errors import HasuraAPIError, MissingResourceError, VerificationError
from graphqltiers.services.hasura import root_field_for

_ORDER_PREFIX = re.compile(r"^\d+_")
_FLOAT = re.compile(r"^-?\d+\.\d+$")

KEY_COLUMN = "id"


def strip_order_prefix(name: str) -> str:
    return _ORDER_PREFIX.sub("", name, count=1)


def coerce_value(value: Optional[str]) -> Any:
    """Converts a raw CSV cell into the JSON value sent to GraphQL."""
    if value is None or value == "":
        return None
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    if _FLOAT.match(value):
        return float(value)
    return value


@dataclass(frozen=True)
class Dataset:
    path: Path
    schema: str
    table: str

    @property
    def root_field(self) -> str:
        return root_field_for(self.schema, self.table)

    def rows(self) -> List[Dict[str, Any]]:
        with self.path.open("r", encoding="utf-8", newline="") as file_obj:
            reader = csv.DictReader(file_obj)
            return [{key: coerce_value(value) for key, value in row.items()} for row in reader]

    def match_filter(self) -> Optional[Dict[str, Any]]:
        """Hasura ``bool_exp`` selecting only the rows this dataset loads.

        Rows are matched on ``id`` when every row has one, otherwise on all of
        their non-null columns. Returns None when there is nothing to match.
        """
        rows = self.rows()
        if rows and all(row.get(KEY_COLUMN) is not None for row in rows):
            return {KEY_COLUMN: {"_in": [row[KEY_COLUMN] for row in rows]}}

        clauses = []
        for row in rows:
            clause = {column: {"_eq": value} for column, value in row.items() if value is not None}
            if clause:
                clauses.append(clause)
        return {"_or": clauses} if clauses else None


class TestDataService:
    """Loads `test-data/NN_schema/NN_table.csv` files and removes them again."""

    __test__ = False

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def discover(self, test_data_dir: Path) -> List[Dataset]:
        """Returns datasets in load order, which is the sorted order of their paths."""
        test_data_dir = Path(test_data_dir)
        if not test_data_dir.is_dir():
            raise MissingResourceError(f"Test data directory not found: {test_data_dir}")

        datasets = []
        for csv_path in sorted(test_data_dir.glob("*/*.csv")):
            datasets.append(
                Dataset(
                    path=csv_path,
                    schema=strip_order_prefix(csv_path.parent.name),
                    table=strip_order_prefix(csv_path.stem),
                )
            )
        return datasets

    def expected_counts(self, datasets: List[Dataset]) -> Dict[str, int]:
        return {dataset.root_field: len(dataset.rows()) for dataset in datasets}

    def load(self, client, test_data_dir: Path) -> Dict[str, int]:
        datasets = self.discover(test_data_dir)
        inserted: Dict[str, int] = {}
        errors = []

        self.console.print("[blue]Loading data in dependency order...[/blue]")
        for dataset in datasets:
            objects = dataset.rows()
            if not objects:
                self.console.print(f"   [yellow]{dataset.root_field}: no data rows found[/yellow]")
                continue
            try:
                affected = client.insert_objects(dataset.root_field, objects)
            except HasuraAPIError as exc:
                self.console.print(f"   [red]{dataset.root_field}: FAILED ({exc})[/red]")
                errors.append(dataset.root_field)
                continue

            inserted[dataset.root_field] = affected
            self.console.print(f"   [green]{dataset.root_field}: inserted {affected}/{len(objects)}[/green]")
            if affected != len(objects):
                self.logger.warning(
                    "Row count mismatch for %s: expected %s, got %s",
                    dataset.root_field,
                    len(objects),
                    affected,
                )

        if errors:
            raise VerificationError(f"Data loading failed for: {', '.join(errors)}")
        return inserted

    def purge(self, client, test_data_dir: Path) -> Dict[str, int]:
        """Deletes the rows each dataset loads, in reverse load order."""
        deleted: Dict[str, int] = {}
        errors = []
        for dataset in reversed(self.discover(test_data_dir)):
            where = dataset.match_filter()
            if where is None:
                self.console.print(f"   [yellow]{dataset.root_field}: no data rows found[/yellow]")
                continue
            try:
                deleted[dataset.root_field] = client.delete_where(dataset.root_field, where)
            except HasuraAPIError as exc:
                self.console.print(f"   [red]{dataset.root_field}: FAILED ({exc})[/red]")
                errors.append(dataset.root_field)
                continue
            self.console.print(
                f"   [green]{dataset.root_field}: deleted {deleted[dataset.root_field]}[/green]"
            )

        if errors:
            raise VerificationError(f"Data purge failed for: {', '.join(errors)}")
        return deleted

    def snapshot(self, client, root_fields: List[str]) -> Dict[str, int]:
        return {root_field: client.aggregate_count(root_field) for root_field in root_fields}

    def verify_counts(self, client, test_data_dir: Path) -> Dict[str, int]:
        """Compares the rows matching each dataset with its CSV row count."""
        datasets = self.discover(test_data_dir)
        expected = self.expected_counts(datasets)
        actual = {}
        for dataset in datasets:
            where = dataset.match_filter()
            actual[dataset.root_field] = client.aggregate_count(dataset.root_field, where) if where else 0
        mismatched = [
            f"{field} (expected {expected[field]}, found {actual[field]})"
            for field in sorted(expected)
            if actual[field] != expected[field]
        ]
        if mismatched:
            raise VerificationError(f"Record counts do not match test data: {', '.join(mismatched)}")
        self.console.print(f"[green]Record counts match for {len(expected)} table(s).[/green]")
        return actual
