"""Actionable error catalog for graphqltiers."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "unknown_tier": {
        "what": "Unknown tier: {name}.",
        "next": "Use one of: admin, operator, member.",
    },
    "unknown_environment": {
        "what": "Unknown environment: {name}.",
        "next": "Use `development` or `production`.",
    },
    "missing_env_file": {
        "what": "Missing environment file: {path}",
        "next": "Create the file with HASURA_GRAPHQL_ENDPOINT and HASURA_GRAPHQL_ADMIN_SECRET.",
    },
    "missing_compose_file": {
        "what": "docker-compose.yml not found: {path}",
        "next": "Check the tier directory or pass `--root` pointing at the workspace.",
    },
    "confirmation_required": {
        "what": "`{operation}` is destructive and targets PRODUCTION for {tier}.",
        "next": "Re-run with `--force` or confirm interactively.",
    },
    "graphql_unreachable": {
        "what": "GraphQL API is not accessible at {endpoint}.",
        "next": "Start it with `graphqltiers deploy {tier} {environment}`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
