"""Table and relationship tracking against a Hasura source."""

from dataclasses import dataclass, field
from typing import List

from graphqltiers.constants import SYSTEM_SCHEMAS
from graphqltiers.errors import HasuraAPIError

ALREADY_TRACKED_CODES = {"already-tracked", "already-exists"}

_EXCLUDED = ", ".join(f"'{schema}'" for schema in SYSTEM_SCHEMAS)

TABLES_SQL = (
    "SELECT schemaname, tablename FROM pg_tables "
    f"WHERE schemaname NOT IN ({_EXCLUDED}) "
    "ORDER BY schemaname, tablename;"
)

FOREIGN_KEYS_SQL = (
    "SELECT tc.table_schema, tc.table_name, kcu.column_name, "
    "ccu.table_schema AS foreign_table_schema, ccu.table_name AS foreign_table_name, "
    "ccu.column_name AS foreign_column_name, tc.constraint_name "
    "FROM information_schema.table_constraints AS tc "
    "JOIN information_schema.key_column_usage AS kcu "
    "ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema "
    "JOIN information_schema.constraint_column_usage AS ccu "
    "ON ccu.constraint_name = tc.constraint_name AND ccu.table_schema = tc.table_schema "
    "WHERE tc.constraint_type = 'FOREIGN KEY' "
    f"AND tc.table_schema NOT IN ({_EXCLUDED}) "
    "ORDER BY tc.table_schema, tc.table_name;"
)


@dataclass
class TrackingSummary:
    tracked: int = 0
    already_tracked: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _is_already_tracked(exc: HasuraAPIError) -> bool:
    return exc.code in ALREADY_TRACKED_CODES or "already" in str(exc).lower()


class TrackingService:
    """Registers database tables and foreign-key relationships with Hasura."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def list_tables(self, client, source: str) -> List[tuple]:
        try:
            tables = client.get_source_tables(source)
            return [(table["schema"], table["name"]) for table in tables]
        except HasuraAPIError as exc:
            self.logger.debug("pg_get_source_tables unavailable (%s), falling back to run_sql", exc)

        return [(row[0], row[1]) for row in client.run_sql(TABLES_SQL, source) if len(row) >= 2]

    def track_all_tables(self, client, source: str) -> TrackingSummary:
        self.console.print(f"[blue]Tracking all tables in source '{source}'...[/blue]")
        summary = TrackingSummary()

        for schema, name in self.list_tables(client, source):
            if schema in SYSTEM_SCHEMAS:
                continue
            self.logger.debug("Tracking: %s.%s", schema, name)
            try:
                client.track_table(source, schema, name)
                summary.tracked += 1
            except HasuraAPIError as exc:
                if _is_already_tracked(exc):
                    summary.already_tracked += 1
                else:
                    summary.failed.append(f"{schema}.{name}: {exc}")

        if summary.tracked:
            self.console.print(f"[green]Tracked {summary.tracked} new table(s).[/green]")
        if summary.already_tracked:
            self.logger.info("%s table(s) were already tracked", summary.already_tracked)
        if not summary.tracked and not summary.already_tracked and not summary.failed:
            self.logger.info("No tables found to track")
        for failure in summary.failed:
            self.logger.warning("Failed to track %s", failure)
        return summary

    def track_relationships(self, client, source: str) -> TrackingSummary:
        self.console.print(f"[blue]Tracking foreign key relationships in '{source}'...[/blue]")
        summary = TrackingSummary()

        for row in client.run_sql(FOREIGN_KEYS_SQL, source):
            if len(row) < 6:
                continue
            schema, table, column, ref_schema, ref_table = row[:5]
            self.logger.debug("Creating relationship: %s.%s -> %s.%s", schema, table, ref_schema, ref_table)

            self._create(
                summary,
                f"{schema}.{table}.{ref_table}",
                client.create_object_relationship,
                source,
                schema,
                table,
                ref_table,
                column,
            )
            self._create(
                summary,
                f"{ref_schema}.{ref_table}.{table}s",
                client.create_array_relationship,
                source,
                ref_schema,
                ref_table,
                f"{table}s",
                schema,
                table,
                column,
            )

        if summary.tracked:
            self.console.print(f"[green]Created {summary.tracked} relationship(s).[/green]")
        if summary.already_tracked:
            self.logger.info("%s relationship(s) already existed", summary.already_tracked)
        for failure in summary.failed:
            self.logger.warning("Failed to create relationship %s", failure)
        return summary

    @staticmethod
    def _create(summary: TrackingSummary, label: str, create, *args):
        try:
            create(*args)
            summary.tracked += 1
        except HasuraAPIError as exc:
            if _is_already_tracked(exc):
                summary.already_tracked += 1
            else:
                summary.failed.append(f"{label}: {exc}")
