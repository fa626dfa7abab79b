import json
import logging
import subprocess
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests
from rich.console import Console
from rich.table import Table

from .constants import (
    DEFAULT_HTTP_TIMEOUT,
    EXIT_EXTERNAL_TOOL,
    EXIT_OK,
    SIMPLE_QUERY,
    VERSION_DIR,
    WAIT_INTERVAL_SECONDS,
    WAIT_MAX_ATTEMPTS,
)
from .errors import (
    ConfirmationRequiredError,
    ExternalToolError,
    HasuraAPIError,
    TierToolError,
    UsageError,
    VerificationError,
)
from .errors_catalog import actionable_error
from .models import Environment, Invocation
from .pipeline import Pipeline, PipelineResult
from .reporting import ExhaustiveTestDriver, ResultTally
from .services.command_runner import CommandRunner
from .services.database import DatabaseService
from .services.docker_runtime import RUNNING, DockerRuntimeService
from .services.environment import EnvironmentLoader
from .services.hasura import HasuraClient, relationship_count, tracked_tables
from .services.metadata import MetadataService
from .services.registry import all_tiers, resolve_tier
from .services.test_data import TestDataService
from .services.tracking import TrackingService
from .services.verification import VerificationService, expected_root_fields
from .services.versioning import VersionService

console = Console()
logger = logging.getLogger("graphqltiers")

DESTRUCTIVE_OPERATIONS = frozenset(
    {
        "rebuild-docker",
        "full-rebuild",
        "fast-rebuild",
        "drop",
        "docker-delete",
        "purge-test-data",
        "test-data-workflow",
        "rebuild-all",
    }
)

STATUS_FORMATS = ("simple", "detailed", "json")


def grade_response_time(milliseconds: int) -> str:
    if milliseconds < 50:
        return "Excellent"
    if milliseconds < 100:
        return "Good"
    if milliseconds < 200:
        return "Fair"
    return "Poor"


class TierToolkit:
    """Runs tier operations as ordered pipelines of external side effects."""

    def __init__(
        self,
        root: str = ".",
        overrides: Optional[Mapping[str, str]] = None,
        force: bool = False,
        no_track: bool = False,
        detailed: bool = False,
        verbose: bool = False,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        confirm: Optional[Callable[[str], bool]] = None,
        requests_module=requests,
    ):
        self.root = Path(root)
        self.overrides = dict(overrides or {})
        self.force = force
        self.no_track = no_track
        self.detailed = detailed
        self.verbose = verbose
        self.timeout = timeout
        self.confirm = confirm
        self.requests = requests_module

        self.wait_attempts = WAIT_MAX_ATTEMPTS
        self.wait_interval = WAIT_INTERVAL_SECONDS
        self.last_result: Optional[PipelineResult] = None
        self._compose_cmd: Optional[List[str]] = None

        self.command_runner = CommandRunner(logger=logger)
        self.environment_loader = EnvironmentLoader(logger=logger)
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            subprocess_module=subprocess,
        )
        self.tracking_service = TrackingService(logger=logger, console=console)
        self.verification_service = VerificationService(logger=logger, console=console)
        self.database_service = DatabaseService(logger=logger, console=console)
        self.test_data_service = TestDataService(logger=logger, console=console)
        self.metadata_service = MetadataService(logger=logger, console=console)
        self.version_service = VersionService(logger=logger)

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        cwd: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, cwd=cwd)

    def _get_docker_compose_cmd(self) -> List[str]:
        return self.docker_runtime_service.get_docker_compose_cmd()

    @property
    def compose_cmd(self) -> List[str]:
        if self._compose_cmd is None:
            self._compose_cmd = self._get_docker_compose_cmd()
        return self._compose_cmd

    def invocation(self, tier: str, environment: str) -> Invocation:
        tier_config = resolve_tier(tier)
        env = Environment.parse(environment)
        return self.environment_loader.load(
            tier_config,
            env,
            self.root,
            self.overrides,
            force=self.force,
            no_track=self.no_track,
            detailed=self.detailed,
            verbose=self.verbose,
        )

    def client(self, invocation: Invocation) -> HasuraClient:
        return HasuraClient(
            invocation.endpoint,
            invocation.admin_secret,
            logger,
            requests_module=self.requests,
            timeout=self.timeout,
        )

    def ensure_confirmed(self, operation: str, invocation: Invocation):
        self._confirm(operation, invocation.is_production, invocation.tier.value, invocation.force)

    def _confirm(self, operation: str, production: bool, target: str, force: bool):
        """Blocks destructive production operations unless forced or confirmed."""
        if operation not in DESTRUCTIVE_OPERATIONS or not production:
            return

        if force:
            logger.warning("Running destructive '%s' against PRODUCTION %s (--force).", operation, target)
            return

        if self.confirm is not None:
            console.print(f"[bold yellow]`{operation}` will modify PRODUCTION for {target}.[/bold yellow]")
            if self.confirm(f"Continue with {operation} on production {target}?"):
                return

        raise ConfirmationRequiredError(
            actionable_error("confirmation_required", operation=operation, tier=target)
        )

    def _prepare(self, operation: str, tier: str, environment: str) -> Invocation:
        invocation = self.invocation(tier, environment)
        self.ensure_confirmed(operation, invocation)
        console.print(f"[bold blue]{operation}[/bold blue] {invocation.describe()} -> {invocation.endpoint}")
        return invocation

    def _pipeline(self, operation: str) -> Pipeline:
        return Pipeline(operation, logger=logger, console=console)

    def _execute(self, pipeline: Pipeline) -> PipelineResult:
        result = pipeline.run()
        self.last_result = result
        result.raise_for_failure()
        return result

    def _require_healthy(self, client: HasuraClient, invocation: Invocation):
        if not client.is_healthy():
            raise ExternalToolError(
                actionable_error(
                    "graphql_unreachable",
                    endpoint=invocation.endpoint,
                    tier=invocation.tier.value,
                    environment=invocation.environment.value,
                )
            )
        console.print("[green]GraphQL API is healthy.[/green]")

    def _production_docker_noop(self, operation: str, invocation: Invocation) -> bool:
        if invocation.is_production:
            console.print(
                f"[yellow]`{operation}` manages local containers and is skipped in production.[/yellow]"
            )
            logger.warning("%s is a no-op in production for %s", operation, invocation.tier.value)
            return True
        return False

    def _track_tables(self, client: HasuraClient, invocation: Invocation):
        summary = self.tracking_service.track_all_tables(client, invocation.source_name)
        if not summary.ok:
            raise ExternalToolError(f"Failed to track {len(summary.failed)} table(s).")
        return summary

    def _track_relationships(self, client: HasuraClient, invocation: Invocation):
        summary = self.tracking_service.track_relationships(client, invocation.source_name)
        if not summary.ok:
            raise ExternalToolError(f"Failed to create {len(summary.failed)} relationship(s).")
        return summary

    def _validate(self, client: HasuraClient) -> int:
        client.test_connection()
        fields = client.root_fields()
        console.print(f"[green]GraphQL schema answers with {len(fields)} query root field(s).[/green]")
        return len(fields)

    def _snapshot(self, client: HasuraClient) -> Dict[str, Any]:
        metadata = client.export_metadata()
        return {"tables": tracked_tables(metadata), "relationships": relationship_count(metadata)}

    def deploy(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("deploy", tier, environment)
        client = self.client(invocation)
        pipeline = self._pipeline("deploy")

        if not invocation.is_production:
            pipeline.add(
                "check_docker",
                lambda: self.docker_runtime_service.ensure_docker_running(self._run_cmd),
                "docker info",
            )
            pipeline.add(
                "start_services",
                lambda: self.docker_runtime_service.compose(
                    self.compose_cmd, invocation.compose_file, ["up", "-d"], self._run_cmd
                ),
                "docker compose up -d",
            )
        pipeline.add(
            "wait_for_graphql",
            lambda: self.docker_runtime_service.wait_for_graphql(
                client, self.wait_attempts, self.wait_interval
            ),
            "GET /healthz",
        )
        pipeline.add("reload_metadata", client.reload_metadata, "reload_metadata")
        if not invocation.no_track:
            pipeline.add(
                "track_tables",
                lambda: self._track_tables(client, invocation),
                "pg_track_table",
                required=False,
            )
            pipeline.add(
                "track_relationships",
                lambda: self._track_relationships(client, invocation),
                "pg_create_object_relationship / pg_create_array_relationship",
                required=False,
            )
        pipeline.add("validate", lambda: self._validate(client), "GraphQL introspection")

        result = self._execute(pipeline)
        console.print(f"[bold green]Deployed {invocation.describe()} at {invocation.endpoint}[/bold green]")
        return result

    def refresh(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("refresh", tier, environment)
        client = self.client(invocation)

        pipeline = self._pipeline("refresh")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("snapshot_before", lambda: self._snapshot(client), "export_metadata")
        pipeline.add("reload_metadata", client.reload_metadata, "reload_metadata")
        pipeline.add(
            "track_tables",
            lambda: self._track_tables(client, invocation),
            "pg_track_table",
            required=False,
        )
        pipeline.add("snapshot_after", lambda: self._snapshot(client), "export_metadata")
        result = self._execute(pipeline)

        before = result.result_of("snapshot_before")
        after = result.result_of("snapshot_after")
        added = sorted(set(after["tables"]) - set(before["tables"]))
        console.print(
            f"Tables: {len(before['tables'])} -> {len(after['tables'])} "
            f"({len(added)} new); relationships: {before['relationships']} -> {after['relationships']}"
        )
        for table in added:
            console.print(f"   [green]+ {table}[/green]")
        return result

    def fast_refresh(self, tier: str, environment: str) -> PipelineResult:
        return self._fast_refresh(self._prepare("fast-refresh", tier, environment))

    def _fast_refresh(self, invocation: Invocation) -> PipelineResult:
        client = self.client(invocation)

        def reload_or_rebuild():
            try:
                return client.reload_metadata()
            except ExternalToolError as exc:
                logger.warning("Metadata reload failed (%s). Falling back to rebuild-docker.", exc)
                self.ensure_confirmed("rebuild-docker", invocation)
                rebuilt = self._rebuild_docker(invocation)
                if rebuilt is None:
                    raise
                return rebuilt

        pipeline = self._pipeline("fast-refresh")
        pipeline.add("test_connection", client.test_connection, "GraphQL introspection")
        pipeline.add("reload_metadata", reload_or_rebuild, "reload_metadata")
        pipeline.add(
            "track_tables",
            lambda: self._track_tables(client, invocation),
            "pg_track_table",
            required=False,
        )
        pipeline.add(
            "track_relationships",
            lambda: self._track_relationships(client, invocation),
            "pg_create_object_relationship / pg_create_array_relationship",
            required=False,
        )
        pipeline.add("validate", lambda: self._validate(client), "GraphQL introspection")
        result = self._execute(pipeline)
        console.print("[bold green]Fast refresh completed.[/bold green]")
        return result

    def fast_rebuild(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("fast-rebuild", tier, environment)
        client = self.client(invocation)

        def apply_saved_metadata():
            if not invocation.metadata_dir.is_dir():
                console.print(
                    f"[yellow]No metadata directory at {invocation.metadata_dir}, tracking all tables instead.[/yellow]"
                )
                return self._track_tables(client, invocation)
            return self.metadata_service.apply(
                client, invocation.metadata_dir, invocation.base_dir, self._run_cmd
            )

        def verify_table_count():
            count = len(tracked_tables(client.export_metadata()))
            if count == 0:
                raise VerificationError("No tables are tracked after the rebuild.")
            console.print(f"[green]{count} table(s) tracked.[/green]")
            return count

        pipeline = self._pipeline("fast-rebuild")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("clear_metadata", client.clear_metadata, "clear_metadata")
        pipeline.add("apply_metadata", apply_saved_metadata, "hasura metadata apply")
        pipeline.add("verify_table_count", verify_table_count, "export_metadata")
        return self._execute(pipeline)

    def rebuild_docker(self, tier: str, environment: str) -> Optional[PipelineResult]:
        return self._rebuild_docker(self._prepare("rebuild-docker", tier, environment))

    def _rebuild_docker(self, invocation: Invocation) -> Optional[PipelineResult]:
        if self._production_docker_noop("rebuild-docker", invocation):
            return None

        config = invocation.tier_config
        client = self.client(invocation)
        docker = self.docker_runtime_service

        pipeline = self._pipeline("rebuild-docker")
        pipeline.add("check_docker", lambda: docker.ensure_docker_running(self._run_cmd), "docker info")
        pipeline.add(
            "stop_services",
            lambda: docker.compose(
                self.compose_cmd,
                invocation.compose_file,
                ["down", "-v", "--remove-orphans"],
                self._run_cmd,
            ),
            "docker compose down -v --remove-orphans",
        )
        pipeline.add(
            "remove_container",
            lambda: docker.remove_container(config.graphql_container, config.graphql_volume, self._run_cmd),
            "docker rm -f / docker volume rm",
        )
        pipeline.add("prune_volumes", lambda: docker.prune_volumes(self._run_cmd), "docker volume prune -f")
        pipeline.add(
            "start_services",
            lambda: docker.compose(self.compose_cmd, invocation.compose_file, ["up", "-d"], self._run_cmd),
            "docker compose up -d",
        )
        pipeline.add(
            "wait_for_graphql",
            lambda: docker.wait_for_graphql(client, self.wait_attempts, self.wait_interval),
            "GET /healthz",
        )
        pipeline.add("reload_metadata", client.reload_metadata, "reload_metadata")
        pipeline.add(
            "track_tables",
            lambda: self._track_tables(client, invocation),
            "pg_track_table",
            required=False,
        )
        pipeline.add(
            "track_relationships",
            lambda: self._track_relationships(client, invocation),
            "pg_create_object_relationship / pg_create_array_relationship",
            required=False,
        )
        pipeline.add("validate", lambda: self._validate(client), "GraphQL introspection")
        result = self._execute(pipeline)
        console.print("[bold green]Docker rebuild completed.[/bold green]")
        return result

    def full_rebuild(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("full-rebuild", tier, environment)
        client = self.client(invocation)

        pipeline = self._pipeline("full-rebuild")
        pipeline.add("rebuild_docker", lambda: self._rebuild_docker(invocation), "rebuild-docker")
        pipeline.add("fast_refresh", lambda: self._fast_refresh(invocation), "fast-refresh")
        pipeline.add("track_tables", lambda: self._track_tables(client, invocation), "pg_track_table")
        pipeline.add(
            "track_relationships",
            lambda: self._track_relationships(client, invocation),
            "pg_create_object_relationship / pg_create_array_relationship",
        )
        return self._execute(pipeline)

    def drop(self, tier: str, environment: str, remove_volumes: bool = False) -> PipelineResult:
        invocation = self._prepare("drop", tier, environment)
        client = self.client(invocation)

        empty_metadata = {
            "version": 3,
            "sources": [
                {
                    "name": invocation.source_name,
                    "kind": "postgres",
                    "tables": [],
                    "configuration": {
                        "connection_info": {
                            "database_url": {"from_env": "HASURA_GRAPHQL_DATABASE_URL"},
                            "isolation_level": "read-committed",
                            "use_prepared_statements": True,
                        }
                    },
                }
            ],
        }

        def clear():
            if not client.is_healthy():
                if invocation.is_production:
                    self._require_healthy(client, invocation)
                console.print(f"[yellow]GraphQL API not accessible at {invocation.endpoint}, skipping metadata.[/yellow]")
                return False
            client.replace_metadata(empty_metadata)
            console.print("[green]GraphQL metadata cleared.[/green]")
            return True

        pipeline = self._pipeline("drop")
        pipeline.add("clear_metadata", clear, "replace_metadata with an empty source")
        if not invocation.is_production:
            args = ["down", "-v"] if remove_volumes else ["down"]
            pipeline.add(
                "stop_services",
                lambda: self.docker_runtime_service.compose(
                    self.compose_cmd, invocation.compose_file, args, self._run_cmd
                ),
                "docker compose " + " ".join(args),
            )
        return self._execute(pipeline)

    def track_tables(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("track-tables", tier, environment)
        client = self.client(invocation)
        pipeline = self._pipeline("track-tables")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("track_tables", lambda: self._track_tables(client, invocation), "pg_track_table")
        return self._execute(pipeline)

    def track_relationships(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("track-relationships", tier, environment)
        client = self.client(invocation)
        pipeline = self._pipeline("track-relationships")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add(
            "track_relationships",
            lambda: self._track_relationships(client, invocation),
            "pg_create_object_relationship / pg_create_array_relationship",
        )
        return self._execute(pipeline)

    def metadata_export(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("metadata-export", tier, environment)
        client = self.client(invocation)
        pipeline = self._pipeline("metadata-export")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add(
            "export_metadata",
            lambda: self.metadata_service.export(client, invocation.base_dir, self._run_cmd),
            "hasura metadata export",
        )
        result = self._execute(pipeline)
        console.print(f"[green]Metadata exported to {result.result_of('export_metadata')}[/green]")
        return result

    def verify_tables(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("verify-tables", tier, environment)
        client = self.client(invocation)
        pipeline = self._pipeline("verify-tables")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add(
            "verify_tables",
            lambda: self.verification_service.verify_tables_tracked(
                client, invocation.source_name, invocation.detailed
            ),
            "run_sql + export_metadata",
        )
        return self._execute(pipeline)

    def verify_schema(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("verify-schema", tier, environment)
        client = self.client(invocation)
        pipeline = self._pipeline("verify-schema")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("verify_schema", lambda: self.verification_service.verify_schema(client), "introspection")
        return self._execute(pipeline)

    def verify_setup(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("verify-setup", tier, environment)
        client = self.client(invocation)
        verification = self.verification_service

        pipeline = self._pipeline("verify-setup")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("test_connection", client.test_connection, "GraphQL introspection")
        pipeline.add(
            "verify_tables",
            lambda: verification.verify_tables_tracked(client, invocation.source_name, invocation.detailed),
            "run_sql + export_metadata",
        )
        pipeline.add("verify_schema", lambda: verification.verify_schema(client), "introspection")
        pipeline.add("verify_relationships", lambda: verification.verify_relationships(client), "export_metadata")
        result = self._execute(pipeline)
        console.print(f"[bold green]{invocation.describe()} setup verified.[/bold green]")
        return result

    def _compare(self, operation: str, tier: str, compare: Callable):
        development = self.invocation(tier, Environment.DEVELOPMENT.value)
        production = self.invocation(tier, Environment.PRODUCTION.value)
        console.print(
            f"[bold blue]{operation}[/bold blue] {tier}: {development.endpoint} vs {production.endpoint}"
        )
        comparison = compare(self.client(development), self.client(production))
        self.verification_service.print_comparison(comparison)
        return comparison

    def compare_environments(self, tier: str):
        return self._compare("compare-environments", tier, self.verification_service.compare_environments)

    def compare_tables(self, tier: str):
        return self._compare("compare-tables", tier, self.verification_service.compare_tables)

    def compare_schema(self, tier: str):
        return self._compare("compare-schema", tier, self.verification_service.compare_schema)

    def count_records(self, tier: str, environment: str) -> Dict[str, Optional[int]]:
        invocation = self._prepare("count-records", tier, environment)
        client = self.client(invocation)
        self._require_healthy(client, invocation)

        counts: Dict[str, Optional[int]] = {}
        for root_field in client.table_root_fields():
            try:
                counts[root_field] = client.aggregate_count(root_field)
            except HasuraAPIError as exc:
                logger.warning("Could not count %s: %s", root_field, exc)
                counts[root_field] = None

        table = Table(title=f"Record counts: {invocation.describe()}")
        table.add_column("Table")
        table.add_column("Records", justify="right")
        for root_field, count in counts.items():
            table.add_row(root_field, "n/a" if count is None else str(count))
        console.print(table)
        console.print(f"Total records: {sum(count or 0 for count in counts.values())}")
        return counts

    def report(self, tier: str, environment: str) -> Dict[str, Any]:
        invocation = self._prepare("report", tier, environment)
        client = self.client(invocation)
        self._require_healthy(client, invocation)

        metadata = client.export_metadata()
        summary = {
            "endpoint": invocation.endpoint,
            "sources": len(metadata.get("sources") or []),
            "tables": len(tracked_tables(metadata)),
            "relationships": relationship_count(metadata),
        }

        table = Table(title=f"GraphQL report: {invocation.describe()}")
        table.add_column("Item")
        table.add_column("Value")
        for key, value in summary.items():
            table.add_row(key, str(value))
        console.print(table)

        if not invocation.is_production:
            stats = self.docker_runtime_service.container_stats(
                invocation.tier_config.graphql_container, self._run_cmd
            )
            if stats:
                console.print(stats)
                summary["container_stats"] = stats
        return summary

    def speed_test(self, tier: str, environment: str) -> Dict[str, int]:
        invocation = self._prepare("speed-test", tier, environment)
        client = self.client(invocation)
        self._require_healthy(client, invocation)

        queries = [
            ("Simple Query", SIMPLE_QUERY),
            ("Introspection", "query { __schema { types { name } } }"),
        ]
        fields = expected_root_fields(client.export_metadata())
        if fields:
            queries.append(("Table Query", f"query {{ {fields[0]}(limit: 1) {{ __typename }} }}"))
            queries.append(("Aggregate Query", f"query {{ {fields[0]}_aggregate {{ aggregate {{ count }} }} }}"))
        else:
            console.print("[yellow]No tables tracked, skipping table queries.[/yellow]")

        timings: Dict[str, int] = {}
        for label, query in queries:
            started = time.perf_counter()
            client.graphql(query)
            timings[label] = int((time.perf_counter() - started) * 1000)
            console.print(f"  {label}: {timings[label]}ms - {grade_response_time(timings[label])}")

        average = sum(timings.values()) // len(timings)
        console.print(f"[bold]Average Response Time: {average}ms - {grade_response_time(average)}[/bold]")
        return timings

    def docker_start(self, tier: str, environment: str) -> Optional[str]:
        invocation = self._prepare("docker-start", tier, environment)
        if self._production_docker_noop("docker-start", invocation):
            return None
        docker = self.docker_runtime_service
        docker.ensure_docker_running(self._run_cmd)
        previous = docker.start_container(
            invocation.tier_config.graphql_container,
            self.compose_cmd,
            invocation.compose_file,
            self._run_cmd,
        )
        docker.wait_for_graphql(self.client(invocation), self.wait_attempts, self.wait_interval)
        return previous

    def docker_stop(self, tier: str, environment: str) -> Optional[str]:
        invocation = self._prepare("docker-stop", tier, environment)
        if self._production_docker_noop("docker-stop", invocation):
            return None
        container = invocation.tier_config.graphql_container
        status = self.docker_runtime_service.container_status(container, self._run_cmd)
        if status != RUNNING:
            console.print(f"[yellow]Container '{container}' is not running.[/yellow]")
            return status
        self._run_cmd(["docker", "stop", container], check=True, capture_output=True)
        console.print(f"[green]Container '{container}' stopped.[/green]")
        return status

    def docker_status(self, tier: str, environment: str) -> Dict[str, Any]:
        invocation = self._prepare("docker-status", tier, environment)
        if self._production_docker_noop("docker-status", invocation):
            return {}
        docker = self.docker_runtime_service
        container = invocation.tier_config.graphql_container

        status = {"container": container, "state": docker.container_status(container, self._run_cmd)}
        if status["state"] == RUNNING:
            status["health"] = docker.container_health(container, self._run_cmd)
            status.update(docker.describe_container(container, self._run_cmd))
            status["graphql"] = "healthy" if self.client(invocation).is_healthy() else "not responding"

        for key, value in status.items():
            console.print(f"  {key}: {value}")
        return status

    def docker_delete(self, tier: str, environment: str) -> Optional[PipelineResult]:
        invocation = self._prepare("docker-delete", tier, environment)
        if self._production_docker_noop("docker-delete", invocation):
            return None
        config = invocation.tier_config
        docker = self.docker_runtime_service

        pipeline = self._pipeline("docker-delete")
        pipeline.add(
            "stop_services",
            lambda: docker.compose(
                self.compose_cmd,
                invocation.compose_file,
                ["down", "-v", "--remove-orphans"],
                self._run_cmd,
            ),
            "docker compose down -v --remove-orphans",
        )
        pipeline.add(
            "remove_container",
            lambda: docker.remove_container(config.graphql_container, config.graphql_volume, self._run_cmd),
            "docker rm -f / docker volume rm",
        )
        return self._execute(pipeline)

    def restart(self, tier: str, environment: str) -> Optional[PipelineResult]:
        invocation = self._prepare("restart", tier, environment)
        if self._production_docker_noop("restart", invocation):
            return None
        container = invocation.tier_config.graphql_container
        client = self.client(invocation)

        pipeline = self._pipeline("restart")
        pipeline.add(
            "restart_container",
            lambda: self._run_cmd(["docker", "restart", container], check=True, capture_output=True),
            f"docker restart {container}",
        )
        pipeline.add(
            "wait_for_graphql",
            lambda: self.docker_runtime_service.wait_for_graphql(client, self.wait_attempts, self.wait_interval),
            "GET /healthz",
        )
        return self._execute(pipeline)

    def status_all(self, output_format: str = "simple") -> Dict[str, Any]:
        if output_format not in STATUS_FORMATS:
            raise UsageError(f"Invalid format: {output_format}. Valid formats: {', '.join(STATUS_FORMATS)}")

        docker = self.docker_runtime_service
        services: Dict[str, List[Dict[str, Any]]] = {"databases": [], "graphql": []}
        for config in all_tiers():
            for kind, name, port in (
                ("databases", config.db_container, config.db_port),
                ("graphql", config.graphql_container, config.graphql_port),
            ):
                entry = {"name": name, "port": port, "status": docker.container_status(name, self._run_cmd)}
                if entry["status"] == RUNNING:
                    entry["health"] = docker.container_health(name, self._run_cmd)
                services[kind].append(entry)

        errors = sum(1 for entries in services.values() for entry in entries if entry["status"] != RUNNING)
        report = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "services": services,
            "summary": {"total_errors": errors, "status": "healthy" if errors == 0 else "degraded"},
        }

        if output_format == "json":
            console.print_json(json.dumps(report))
        else:
            for kind, entries in services.items():
                table = Table(title="DATABASE SERVICES" if kind == "databases" else "GRAPHQL SERVICES")
                table.add_column("Name")
                table.add_column("Port", justify="right")
                table.add_column("Status")
                if output_format == "detailed":
                    table.add_column("Health")
                for entry in entries:
                    row = [entry["name"], str(entry["port"]), entry["status"]]
                    if output_format == "detailed":
                        row.append(entry.get("health", "-"))
                    table.add_row(*row)
                console.print(table)

        if errors:
            raise VerificationError(f"{errors} service(s) not running.")
        console.print("[green]All services running normally![/green]")
        return report

    def test_health(self, tier: str = "all", environment: str = Environment.DEVELOPMENT.value) -> Dict[str, str]:
        env = Environment.parse(environment)
        configs = all_tiers() if tier == "all" else [resolve_tier(tier)]
        results: Dict[str, str] = {}

        for config in configs:
            name = config.tier.value
            if env is Environment.PRODUCTION:
                results[name] = "skipped"
                console.print(f"  {name}: [dim]skipped (production health checks use hosted endpoints)[/dim]")
                continue
            if self.docker_runtime_service.container_status(config.graphql_container, self._run_cmd) != RUNNING:
                results[name] = "container not running"
            else:
                client = HasuraClient(
                    f"http://localhost:{config.graphql_port}",
                    config.admin_secret,
                    logger,
                    requests_module=self.requests,
                    timeout=self.timeout,
                )
                results[name] = "healthy" if client.is_healthy() else "not responding"
            color = "green" if results[name] == "healthy" else "red"
            console.print(f"  {name}: [{color}]{results[name]}[/{color}] (port {config.graphql_port})")

        failed = [name for name, state in results.items() if state not in ("healthy", "skipped")]
        if failed:
            raise VerificationError(f"{len(failed)} health check(s) failed: {', '.join(failed)}")
        return results

    def test_connection(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("test-connection", tier, environment)
        client = self.client(invocation)

        def database_check():
            if not invocation.database_url:
                console.print("[dim]No database URL configured, skipping psql check.[/dim]")
                return None
            if not self.database_service.test_connection(invocation.database_url, self._run_cmd):
                raise ExternalToolError(f"Database connection failed for {invocation.describe()}.")
            console.print("[green]Database connection OK.[/green]")
            return True

        pipeline = self._pipeline("test-connection")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("graphql_introspection", client.test_connection, "GraphQL introspection")
        pipeline.add("database_connection", database_check, "psql -c 'SELECT 1'")
        return self._execute(pipeline)

    def load_test_data(self, tier: str, environment: str) -> Dict[str, int]:
        invocation = self._prepare("load-test-data", tier, environment)
        client = self.client(invocation)
        self._require_healthy(client, invocation)
        inserted = self.test_data_service.load(client, invocation.test_data_dir)
        console.print(f"[green]Total rows inserted: {sum(inserted.values())}[/green]")
        return inserted

    def purge_test_data(self, tier: str, environment: str) -> Dict[str, int]:
        invocation = self._prepare("purge-test-data", tier, environment)
        client = self.client(invocation)
        self._require_healthy(client, invocation)
        deleted = self.test_data_service.purge(client, invocation.test_data_dir)
        console.print(f"[green]Total rows deleted: {sum(deleted.values())}[/green]")
        return deleted

    def load_seed_data(self, tier: str, environment: str) -> PipelineResult:
        invocation = self._prepare("load-seed-data", tier, environment)
        client = self.client(invocation)

        pipeline = self._pipeline("load-seed-data")
        pipeline.add(
            "apply_seed_files",
            lambda: self.database_service.run_seed_files(
                invocation.database_url, invocation.seed_data_dir, self._run_cmd
            ),
            "psql -f seed-data/*.sql",
        )
        pipeline.add(
            "verify_tables",
            lambda: self.verification_service.verify_tables_tracked(
                client, invocation.source_name, invocation.detailed
            ),
            "run_sql + export_metadata",
        )
        return self._execute(pipeline)

    def test_data_workflow(self, tier: str, environment: str) -> Dict[str, Dict[str, int]]:
        invocation = self._prepare("test-data-workflow", tier, environment)
        client = self.client(invocation)
        data = self.test_data_service
        datasets = data.discover(invocation.test_data_dir)
        root_fields = sorted({dataset.root_field for dataset in datasets})
        counts: Dict[str, Dict[str, int]] = {}

        def count(label):
            counts[label] = data.snapshot(client, root_fields)
            return counts[label]

        def compare_counts():
            changed = [
                f"{field} ({counts['before'][field]} -> {counts['after'][field]})"
                for field in root_fields
                if counts["before"][field] != counts["after"][field]
            ]
            if changed:
                raise VerificationError(f"Record counts changed during the workflow: {', '.join(changed)}")

        pipeline = self._pipeline("test-data-workflow")
        pipeline.add("health_check", lambda: self._require_healthy(client, invocation), "GET /healthz")
        pipeline.add("count_before", lambda: count("before"), "aggregate counts")
        pipeline.add("purge", lambda: data.purge(client, invocation.test_data_dir), "delete mutations")
        pipeline.add("load", lambda: data.load(client, invocation.test_data_dir), "insert mutations")
        pipeline.add("verify", lambda: data.verify_counts(client, invocation.test_data_dir), "aggregate counts")
        pipeline.add("cleanup", lambda: data.purge(client, invocation.test_data_dir), "delete mutations")
        pipeline.add("count_after", lambda: count("after"), "aggregate counts")
        pipeline.add("compare_counts", compare_counts, "before/after record counts")
        self._execute(pipeline)

        for root_field in root_fields:
            console.print(f"  {root_field}: {counts['before'][root_field]} -> {counts['after'][root_field]}")
        console.print("[bold green]Test data workflow completed.[/bold green]")
        return counts

    def _for_all_tiers(self, operation: str, environment: str, action: Callable[[Invocation], Any]) -> Dict[str, str]:
        results: Dict[str, str] = {}
        for config in all_tiers():
            name = config.tier.value
            console.rule(f"{operation}: {name}")
            try:
                action(self.invocation(name, environment))
                results[name] = "success"
            except TierToolError as exc:
                console.print(f"[red]{name} failed:[/red] {exc}")
                logger.error("%s failed for %s: %s", operation, name, exc)
                results[name] = "failed"

        failed = [name for name, state in results.items() if state == "failed"]
        console.print(f"Successful: {len(results) - len(failed)}  Failed: {len(failed)}")
        if failed:
            raise ExternalToolError(f"{operation} failed for: {', '.join(failed)}")
        return results

    def refresh_all(self, environment: str) -> Dict[str, str]:
        Environment.parse(environment)
        return self._for_all_tiers("refresh-all", environment, self._fast_refresh)

    def rebuild_all(self, environment: str) -> Dict[str, str]:
        env = Environment.parse(environment)
        if env is Environment.PRODUCTION:
            self._confirm("rebuild-all", True, "all tiers", self.force)
            return self._for_all_tiers("rebuild-all", environment, self._fast_refresh)
        return self._for_all_tiers("rebuild-all", environment, self._rebuild_docker)

    def exhaustive_test(self, plan=None) -> ResultTally:
        driver = ExhaustiveTestDriver(
            console,
            logger,
            self.command_runner.run,
            extra_args=["--root", str(self.root)],
        )
        tally = driver.run(plan)
        if tally.failed:
            raise VerificationError(f"{tally.failed} of {tally.total} command(s) failed.")
        return tally

    def version(self, tier: Optional[str] = None, update: bool = False, as_json: bool = False):
        tier_config = resolve_tier(tier) if tier else None
        info = self.version_service.collect(
            self.root, self._run_cmd, tier=tier_config.tier.value if tier_config else None
        )
        if update:
            base_dir = tier_config.base_dir(self.root) if tier_config else self.root
            written = self.version_service.write(info, base_dir / VERSION_DIR)
            console.print(f"[green]Version files updated: {info.version}[/green]")
            console.print(f"   Files: {', '.join(path.name for path in written)}")
        if as_json:
            console.print_json(json.dumps(info.to_dict()))
        elif not update:
            console.print(f"Version: {info.version}")
            console.print(f"Commit: {info.commit}{'-dirty' if info.dirty else ''}  Branch: {info.branch}")
        return info

    def run(self, operation: str, *args, **kwargs) -> int:
        """Runs one operation and maps failures to process exit codes."""
        handler = getattr(self, operation.replace("-", "_"))
        try:
            handler(*args, **kwargs)
            return EXIT_OK
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return EXIT_EXTERNAL_TOOL
        except TierToolError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            if self.last_result is not None and self.last_result.failed_step:
                console.print(f"[red]Failed step:[/red] {self.last_result.failed_step}")
            logger.error(str(exc))
            return exc.exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return EXIT_EXTERNAL_TOOL
