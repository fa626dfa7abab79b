"""Shared domain models for graphqltiers."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from graphqltiers.constants import (
    COMPOSE_FILE,
    CONFIG_DIR,
    DEFAULT_SOURCE_NAME,
    METADATA_DIR,
    SEED_DATA_DIR,
    TEST_DATA_DIR,
    VERSION_DIR,
)
from graphqltiers.errors import UnknownEnvironmentError, UnknownTierError
from graphqltiers.errors_catalog import actionable_error


class Tier(str, Enum):
    ADMIN = "admin"
    OPERATOR = "operator"
    MEMBER = "member"

    @classmethod
    def parse(cls, name: str) -> "Tier":
        try:
            return cls(str(name).strip())
        except ValueError as exc:
            raise UnknownTierError(actionable_error("unknown_tier", name=str(name))) from exc


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, name: str) -> "Environment":
        try:
            return cls(str(name).strip())
        except ValueError as exc:
            raise UnknownEnvironmentError(
                actionable_error("unknown_environment", name=str(name))
            ) from exc


@dataclass(frozen=True)
class TierConfig:
    """Static attributes of one tier deployment."""

    tier: Tier
    graphql_port: int
    graphql_container: str
    graphql_volume: str
    admin_secret: str
    db_port: int
    db_container: str
    db_name: str
    db_user: str
    db_password: str
    directory: str

    def base_dir(self, root: Path) -> Path:
        return Path(root) / self.directory


@dataclass(frozen=True)
class Invocation:
    """Resolved tier, loaded environment and CLI flags for one command run."""

    tier_config: TierConfig
    environment: Environment
    root: Path
    variables: Mapping[str, str] = field(default_factory=dict)
    force: bool = False
    no_track: bool = False
    detailed: bool = False
    verbose: bool = False

    def __post_init__(self):
        object.__setattr__(self, "root", Path(self.root))
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    @property
    def tier(self) -> Tier:
        return self.tier_config.tier

    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def base_dir(self) -> Path:
        return self.tier_config.base_dir(self.root)

    @property
    def config_dir(self) -> Path:
        return self.base_dir / CONFIG_DIR

    @property
    def metadata_dir(self) -> Path:
        return self.base_dir / METADATA_DIR

    @property
    def version_dir(self) -> Path:
        return self.base_dir / VERSION_DIR

    @property
    def test_data_dir(self) -> Path:
        return self.base_dir / TEST_DATA_DIR

    @property
    def seed_data_dir(self) -> Path:
        return self.base_dir / SEED_DATA_DIR

    @property
    def compose_file(self) -> Path:
        return self.base_dir / COMPOSE_FILE

    def _first(self, *keys: str) -> Optional[str]:
        for key in keys:
            value = self.variables.get(key)
            if value:
                return value
        return None

    @property
    def endpoint(self) -> str:
        configured = self._first("HASURA_GRAPHQL_ENDPOINT", "HASURA_ENDPOINT")
        if configured:
            return configured.rstrip("/")
        if self.is_production:
            return f"https://{self.tier.value}-graphql-api.hasura.app"
        return f"http://localhost:{self.tier_config.graphql_port}"

    @property
    def admin_secret(self) -> str:
        return self._first("HASURA_GRAPHQL_ADMIN_SECRET") or self.tier_config.admin_secret

    @property
    def database_url(self) -> Optional[str]:
        configured = self._first("HASURA_GRAPHQL_DATABASE_URL", "DATABASE_URL")
        if configured:
            return configured
        if self.is_production:
            return None
        config = self.tier_config
        return (
            f"postgresql://{config.db_user}:{config.db_password}"
            f"@localhost:{config.db_port}/{config.db_name}"
        )

    @property
    def source_name(self) -> str:
        return self._first("HASURA_GRAPHQL_SOURCE") or DEFAULT_SOURCE_NAME

    def describe(self) -> str:
        return f"{self.tier.value} ({self.environment.value})"
