"""Domain errors for graphqltiers."""

from graphqltiers.constants import (
    EXIT_CONFIRMATION_REQUIRED,
    EXIT_EXTERNAL_TOOL,
    EXIT_MISSING_RESOURCE,
    EXIT_USAGE,
)


class TierToolError(RuntimeError):
    """Raised when an operation cannot continue safely."""

    exit_code = EXIT_EXTERNAL_TOOL


class UsageError(TierToolError):
    """Bad or missing arguments."""

    exit_code = EXIT_USAGE


class UnknownTierError(UsageError):
    """Tier name is not one of the registered tiers."""


class UnknownEnvironmentError(UsageError):
    """Environment name is not development or production."""


class MissingResourceError(TierToolError):
    """A config file, directory or compose file is absent."""

    exit_code = EXIT_MISSING_RESOURCE


class ExternalToolError(TierToolError):
    """An external tool (docker, psql, hasura, HTTP endpoint) failed."""


class CommandTimeoutError(ExternalToolError):
    """An external command exceeded its timeout."""


class HasuraAPIError(ExternalToolError):
    """The Hasura metadata, query or GraphQL endpoint returned an error."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


class VerificationError(TierToolError):
    """A verification or comparison found a mismatch."""


class ConfirmationRequiredError(TierToolError):
    """A destructive production operation was not confirmed."""

    exit_code = EXIT_CONFIRMATION_REQUIRED
