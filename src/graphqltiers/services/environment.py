"""Per tier/environment .env loading."""

from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from graphqltiers.constants import CONFIG_DIR
from graphqltiers.errors import MissingResourceError, TierToolError
from graphqltiers.errors_catalog import actionable_error
from graphqltiers.models import Environment, Invocation, TierConfig


class EnvironmentLoader:
    """Reads ``config/<environment>.env`` under a tier directory into an ``Invocation``."""

    def __init__(self, logger):
        self.logger = logger

    def env_file(self, tier_config: TierConfig, environment: Environment, root: Path) -> Path:
        return tier_config.base_dir(root) / CONFIG_DIR / f"{environment.value}.env"

    def read(self, path: Path) -> Dict[str, str]:
        if not path.is_file():
            raise MissingResourceError(actionable_error("missing_env_file", path=str(path)))

        try:
            parsed = dotenv_values(path, encoding="utf-8")
        except OSError as exc:
            raise TierToolError(f"Could not read environment file '{path}': {exc}") from exc

        return {key: value or "" for key, value in parsed.items()}

    def load(
        self,
        tier_config: TierConfig,
        environment: Environment,
        root: Path,
        overrides: Optional[Mapping[str, str]] = None,
        **flags,
    ) -> Invocation:
        path = self.env_file(tier_config, environment, root)
        self.logger.debug("Loading environment file: %s", path)

        variables = self.read(path)
        if overrides:
            variables.update(overrides)

        return Invocation(
            tier_config=tier_config,
            environment=environment,
            root=Path(root),
            variables=variables,
            **flags,
        )
