import logging
import os
import sys

import click
from rich.logging import RichHandler

from .constants import DEFAULT_HTTP_TIMEOUT, EXIT_USAGE
from .core import STATUS_FORMATS, TierToolkit
from .errors import TierToolError, UnknownEnvironmentError, UnknownTierError
from .models import Environment, Tier
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_FILE = ".graphqltiers.yml"


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


class TierGroup(click.Group):
    """Click group whose usage errors exit with status 64."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as exc:
            exc.exit_code = EXIT_USAGE
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = EXIT_USAGE
            raise


def _fail(exc: TierToolError):
    error = click.ClickException(str(exc))
    error.exit_code = exc.exit_code
    raise error from exc


def _parse_tier(ctx, param, value):
    if value is None:
        return None
    try:
        return Tier.parse(value).value
    except UnknownTierError as exc:
        raise click.BadParameter(str(exc)) from exc


def _parse_tier_or_all(ctx, param, value):
    if value == "all":
        return value
    return _parse_tier(ctx, param, value)


def _parse_environment(ctx, param, value):
    if value is None:
        return None
    try:
        return Environment.parse(value).value
    except UnknownEnvironmentError as exc:
        raise click.BadParameter(str(exc)) from exc


def _parse_overrides(ctx, param, values):
    overrides = {}
    for item in values or ():
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got '{item}'.")
        overrides[key.strip()] = value
    return overrides


def _build_toolkit(ctx, force=False, no_track=False, detailed=False) -> TierToolkit:
    settings = ctx.obj
    return TierToolkit(
        root=settings["root"],
        overrides=settings["overrides"],
        force=force or settings["force"],
        no_track=no_track,
        detailed=detailed,
        verbose=settings["verbose"],
        timeout=settings["timeout"],
        confirm=click.confirm if sys.stdin.isatty() else None,
    )


@click.group(cls=TierGroup)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--root", required=False, type=click.Path(), help="Workspace holding the <tier>-graphql-api directories.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option("--timeout", type=float, default=None, help="HTTP request timeout in seconds.")
@click.option("--force", is_flag=True, default=None, help="Skip confirmation for destructive production operations.")
@click.option(
    "--set",
    "overrides",
    multiple=True,
    callback=_parse_overrides,
    metavar="KEY=VALUE",
    help="Override a variable from the environment file. Repeatable.",
)
@click.pass_context
def main(ctx, config, root, verbose, log_file, timeout, force, overrides):
    """Deploy, refresh, verify and test the admin, operator and member GraphQL tiers."""
    logger = logging.getLogger("graphqltiers")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except TierToolError as exc:
        _fail(exc)

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    ctx.obj = {
        "root": str(_resolve_option(root, config_values, "root", default=os.getcwd())),
        "verbose": verbose,
        "timeout": float(_resolve_option(timeout, config_values, "timeout", default=DEFAULT_HTTP_TIMEOUT)),
        "force": bool(_resolve_option(force, config_values, "force", default=False)),
        "overrides": overrides,
    }


def tier_arguments(func):
    func = click.option("--force", is_flag=True, help="Skip confirmation for destructive production operations.")(func)
    func = click.argument("environment", callback=_parse_environment)(func)
    func = click.argument("tier", callback=_parse_tier)(func)
    return func


TIER_COMMANDS = {
    "refresh": "Reload metadata, track new tables and report what changed.",
    "fast-refresh": "Reload metadata and track tables without restarting services.",
    "fast-rebuild": "Clear metadata and re-apply the saved metadata directory.",
    "full-rebuild": "Rebuild containers, refresh and track tables and relationships.",
    "rebuild-docker": "Recreate the tier's containers and volumes from scratch.",
    "track-tables": "Track every untracked table of the tier database.",
    "track-relationships": "Create object and array relationships from foreign keys.",
    "metadata-export": "Export metadata into the tier directory.",
    "verify-schema": "Check that every tracked table exposes a query root field.",
    "count-records": "Print aggregate record counts of every table.",
    "report": "Print a health and metadata report.",
    "docker-start": "Start the tier's GraphQL container.",
    "docker-stop": "Stop the tier's GraphQL container.",
    "docker-status": "Show container state, ports and health.",
    "docker-delete": "Remove the tier's containers and volumes.",
    "restart": "Restart the tier's GraphQL container.",
    "test-connection": "Check /healthz, GraphQL introspection and the database connection.",
    "speed-test": "Time simple, introspection, table and aggregate queries.",
    "load-test-data": "Insert the CSV test dataset through GraphQL mutations.",
    "purge-test-data": "Delete the CSV test dataset through GraphQL mutations.",
    "load-seed-data": "Apply seed-data/*.sql with psql, then verify tracked tables.",
    "test-data-workflow": "Purge, load, verify and purge the test dataset.",
}


def _register_tier_command(name: str, help_text: str):
    @main.command(name=name, help=help_text)
    @tier_arguments
    @click.pass_context
    def command(ctx, tier, environment, force):
        toolkit = _build_toolkit(ctx, force=force)
        raise SystemExit(toolkit.run(name, tier, environment))

    return command


for _name, _help in TIER_COMMANDS.items():
    _register_tier_command(_name, _help)


@main.command()
@tier_arguments
@click.option("--no-track", is_flag=True, help="Skip table and relationship tracking.")
@click.pass_context
def deploy(ctx, tier, environment, force, no_track):
    """Start services, reload metadata and track tables and relationships."""
    toolkit = _build_toolkit(ctx, force=force, no_track=no_track)
    raise SystemExit(toolkit.run("deploy", tier, environment))


@main.command()
@tier_arguments
@click.option("--volumes", is_flag=True, help="Also remove Docker volumes (development).")
@click.pass_context
def drop(ctx, tier, environment, force, volumes):
    """Replace metadata with an empty source and stop local services."""
    toolkit = _build_toolkit(ctx, force=force)
    raise SystemExit(toolkit.run("drop", tier, environment, remove_volumes=volumes))


@main.command(name="verify-tables")
@tier_arguments
@click.option("--detailed", is_flag=True, help="List every untracked table.")
@click.pass_context
def verify_tables(ctx, tier, environment, force, detailed):
    """Compare database tables with tracked tables and run sample queries."""
    toolkit = _build_toolkit(ctx, force=force, detailed=detailed)
    raise SystemExit(toolkit.run("verify-tables", tier, environment))


@main.command(name="verify-setup")
@tier_arguments
@click.option("--detailed", is_flag=True, help="List every untracked table.")
@click.pass_context
def verify_setup(ctx, tier, environment, force, detailed):
    """Run health, connection, table, schema and relationship checks."""
    toolkit = _build_toolkit(ctx, force=force, detailed=detailed)
    raise SystemExit(toolkit.run("verify-setup", tier, environment))


def _register_compare_command(name: str, help_text: str):
    @main.command(name=name, help=help_text)
    @click.argument("tier", callback=_parse_tier)
    @click.pass_context
    def command(ctx, tier):
        raise SystemExit(_build_toolkit(ctx).run(name, tier))

    return command


_register_compare_command("compare-environments", "Compare development and production object types.")
_register_compare_command("compare-tables", "Compare development and production table root fields.")
_register_compare_command("compare-schema", "Compare development and production fields per type.")


@main.command(name="status-all")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(STATUS_FORMATS),
    default="simple",
    show_default=True,
)
@click.pass_context
def status_all(ctx, output_format):
    """Show container status for every tier database and GraphQL server."""
    raise SystemExit(_build_toolkit(ctx).run("status-all", output_format=output_format))


@main.command(name="test-health")
@click.argument("tier", required=False, default="all", callback=_parse_tier_or_all)
@click.argument("environment", required=False, default="development", callback=_parse_environment)
@click.pass_context
def test_health(ctx, tier, environment):
    """Check container state and /healthz for one tier or all of them."""
    raise SystemExit(_build_toolkit(ctx).run("test-health", tier, environment))


@main.command(name="refresh-all")
@click.argument("environment", callback=_parse_environment)
@click.option("--force", is_flag=True, help="Skip confirmation for destructive production operations.")
@click.pass_context
def refresh_all(ctx, environment, force):
    """Fast-refresh every tier, continuing after failures."""
    raise SystemExit(_build_toolkit(ctx, force=force).run("refresh-all", environment))


@main.command(name="rebuild-all")
@click.argument("environment", callback=_parse_environment)
@click.option("--force", is_flag=True, help="Skip confirmation for destructive production operations.")
@click.pass_context
def rebuild_all(ctx, environment, force):
    """Rebuild every tier (fast-refresh in production), continuing after failures."""
    raise SystemExit(_build_toolkit(ctx, force=force).run("rebuild-all", environment))


@main.command(name="exhaustive-test")
@click.pass_context
def exhaustive_test(ctx):
    """Run every command across tiers and environments and summarize the results."""
    raise SystemExit(_build_toolkit(ctx).run("exhaustive-test"))


@main.command()
@click.argument("tier", required=False, callback=_parse_tier)
@click.option("--update", is_flag=True, help="Write VERSION, VERSION.json, VERSION.md and version-update.sql.")
@click.option("--json", "as_json", is_flag=True, help="Print version information as JSON.")
@click.pass_context
def version(ctx, tier, update, as_json):
    """Show the build version derived from git history."""
    raise SystemExit(_build_toolkit(ctx).run("version", tier, update=update, as_json=as_json))


if __name__ == "__main__":
    main()
