"""Shared constants for graphqltiers."""

EXIT_OK = 0
EXIT_EXTERNAL_TOOL = 1
EXIT_USAGE = 64
EXIT_MISSING_RESOURCE = 66
EXIT_CONFIRMATION_REQUIRED = 77
EXIT_TIMEOUT = 124

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_TEST_TIMEOUT = 30.0
WAIT_MAX_ATTEMPTS = 30
WAIT_INTERVAL_SECONDS = 2.0

DEFAULT_SOURCE_NAME = "default"
COMPOSE_FILE = "docker-compose.yml"
CONFIG_DIR = "config"
METADATA_DIR = "metadata"
VERSION_DIR = "version"
TEST_DATA_DIR = "test-data"
SEED_DATA_DIR = "seed-data"

SYSTEM_SCHEMAS = ("information_schema", "pg_catalog", "pg_toast", "hdb_catalog", "hdb_views")

SIMPLE_QUERY = "query { __typename }"
CONNECTION_QUERY = "query { __schema { queryType { name } } }"
ROOT_FIELDS_QUERY = "{ __schema { queryType { fields { name } } } }"
TYPES_QUERY = "query { __schema { types { name kind fields { name } } } }"
