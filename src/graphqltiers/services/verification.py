"""Verification of tracked metadata and dev/prod schema comparison."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from graphqltiers.constants import SYSTEM_SCHEMAS
from graphqltiers.errors import HasuraAPIError, VerificationError
from graphqltiers.services.hasura import relationship_count, root_field_for, tracked_tables

_EXCLUDED = ", ".join(f"'{schema}'" for schema in SYSTEM_SCHEMAS)

BASE_TABLES_SQL = (
    "SELECT table_schema, table_name FROM information_schema.tables "
    f"WHERE table_schema NOT IN ({_EXCLUDED}) AND table_type = 'BASE TABLE' "
    "ORDER BY table_schema, table_name;"
)


@dataclass
class Comparison:
    label: str
    only_left: List[str] = field(default_factory=list)
    only_right: List[str] = field(default_factory=list)
    left_count: int = 0
    right_count: int = 0
    changed: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)

    @property
    def matches(self) -> bool:
        return not self.only_left and not self.only_right and not self.changed


def compare_sets(label: str, left: Iterable[str], right: Iterable[str]) -> Comparison:
    left_set, right_set = set(left), set(right)
    return Comparison(
        label=label,
        only_left=sorted(left_set - right_set),
        only_right=sorted(right_set - left_set),
        left_count=len(left_set),
        right_count=len(right_set),
    )


def expected_root_fields(metadata) -> List[str]:
    fields = []
    for source in metadata.get("sources") or []:
        for entry in source.get("tables") or []:
            table = entry.get("table") or {}
            custom_name = (entry.get("configuration") or {}).get("custom_name")
            fields.append(custom_name or root_field_for(table.get("schema", "public"), table["name"]))
    return sorted(fields)


class VerificationService:
    """Checks that a tier's database, metadata and GraphQL schema agree."""

    SAMPLE_SIZE = 5

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def verify_tables_tracked(self, client, source: str, detailed: bool = False) -> Dict[str, int]:
        rows = client.run_sql(BASE_TABLES_SQL, source)
        database_tables = sorted(f"{row[0]}.{row[1]}" for row in rows if len(row) >= 2)
        self.console.print(f"[green]Found {len(database_tables)} table(s) in database.[/green]")

        metadata = client.export_metadata()
        tracked = tracked_tables(metadata)
        self.console.print(f"[green]Found {len(tracked)} tracked table(s) in Hasura.[/green]")

        comparison = compare_sets("tables", database_tables, tracked)
        if comparison.only_left:
            if detailed:
                for table in comparison.only_left:
                    self.console.print(f"   [red]missing from tracking:[/red] {table}")
            raise VerificationError(
                f"Table count mismatch: {len(database_tables)} database table(s), "
                f"{len(tracked)} tracked. Missing: {', '.join(comparison.only_left)}"
            )

        failed = self.sample_queries(client, metadata)
        if failed:
            raise VerificationError(f"GraphQL queries failed for: {', '.join(failed)}")

        return {"database_tables": len(database_tables), "tracked_tables": len(tracked)}

    def sample_queries(self, client, metadata) -> List[str]:
        failed = []
        for root_field in expected_root_fields(metadata)[: self.SAMPLE_SIZE]:
            self.logger.debug("Testing query on %s", root_field)
            try:
                client.graphql(f"query {{ {root_field}(limit: 1) {{ __typename }} }}")
            except HasuraAPIError as exc:
                self.logger.warning("Query on %s failed: %s", root_field, exc)
                failed.append(root_field)
        return failed

    def verify_schema(self, client) -> Dict[str, int]:
        metadata = client.export_metadata()
        expected = expected_root_fields(metadata)
        exposed = set(client.root_fields())

        missing = [name for name in expected if name not in exposed]
        if missing:
            raise VerificationError(
                f"{len(missing)} tracked table(s) have no query root field: {', '.join(missing)}"
            )

        self.console.print(f"[green]All {len(expected)} tracked table(s) are exposed in GraphQL.[/green]")
        return {"tracked_tables": len(expected), "root_fields": len(exposed)}

    def verify_relationships(self, client) -> int:
        count = relationship_count(client.export_metadata())
        if count == 0:
            raise VerificationError("No relationships tracked. Run `track-relationships` first.")
        self.console.print(f"[green]{count} relationship(s) tracked.[/green]")
        return count

    def compare_environments(self, dev_client, prod_client) -> Comparison:
        return compare_sets(
            "object types",
            dev_client.type_fields().keys(),
            prod_client.type_fields().keys(),
        )

    def compare_tables(self, dev_client, prod_client) -> Comparison:
        return compare_sets(
            "tables",
            dev_client.table_root_fields(),
            prod_client.table_root_fields(),
        )

    def compare_schema(self, dev_client, prod_client) -> Comparison:
        dev_types = dev_client.type_fields()
        prod_types = prod_client.type_fields()
        comparison = compare_sets("types", dev_types.keys(), prod_types.keys())

        for name in sorted(set(dev_types) & set(prod_types)):
            fields = compare_sets(name, dev_types[name], prod_types[name])
            if not fields.matches:
                comparison.changed[name] = {
                    "development": fields.only_left,
                    "production": fields.only_right,
                }
        return comparison

    def print_comparison(self, comparison: Comparison, left: str = "Development", right: str = "Production"):
        self.console.print(f"  {left}: [bold]{comparison.left_count}[/bold] {comparison.label}")
        self.console.print(f"  {right}: [bold]{comparison.right_count}[/bold] {comparison.label}")
        if comparison.only_left:
            self.console.print(f"[yellow]Only in {left}:[/yellow]")
            for name in comparison.only_left:
                self.console.print(f"    - {name}")
        if comparison.only_right:
            self.console.print(f"[yellow]Only in {right}:[/yellow]")
            for name in comparison.only_right:
                self.console.print(f"    - {name}")
        for type_name, diff in comparison.changed.items():
            self.console.print(f"[yellow]Field differences in {type_name}:[/yellow]")
            for name in diff["development"]:
                self.console.print(f"    - {name} (only in {left})")
            for name in diff["production"]:
                self.console.print(f"    - {name} (only in {right})")
        if comparison.matches:
            self.console.print(f"[green]{left} and {right} are in sync.[/green]")
