"""HTTP client for the Hasura metadata, query and GraphQL endpoints."""

from typing import Any, Dict, List, Optional

import requests

from graphqltiers.constants import (
    CONNECTION_QUERY,
    DEFAULT_HTTP_TIMEOUT,
    ROOT_FIELDS_QUERY,
    TYPES_QUERY,
)
from graphqltiers.errors import ExternalToolError, HasuraAPIError

ROOT_FIELD_SUFFIXES = ("_aggregate", "_by_pk", "_stream")


def tracked_tables(metadata: Dict[str, Any]) -> List[str]:
    """Returns ``schema.name`` for every table tracked in an exported metadata document."""
    names = set()
    for source in metadata.get("sources") or []:
        for entry in source.get("tables") or []:
            table = entry.get("table") or {}
            if table.get("name"):
                names.add(f"{table.get('schema', 'public')}.{table['name']}")
    return sorted(names)


def relationship_count(metadata: Dict[str, Any]) -> int:
    total = 0
    for source in metadata.get("sources") or []:
        for entry in source.get("tables") or []:
            total += len(entry.get("object_relationships") or [])
            total += len(entry.get("array_relationships") or [])
    return total


def root_field_for(schema: str, name: str) -> str:
    """Default Hasura root field name of a table."""
    if schema == "public":
        return name
    return f"{schema}_{name}"


class HasuraClient:
    """Minimal Hasura v2 client for metadata, run_sql and GraphQL execution."""

    def __init__(
        self,
        endpoint: str,
        admin_secret: Optional[str],
        logger,
        requests_module=requests,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.admin_secret = admin_secret
        self.logger = logger
        self.requests = requests_module
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.admin_secret:
            headers["x-hasura-admin-secret"] = self.admin_secret
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.endpoint}{path}"
        self.logger.debug("POST %s %s", url, payload.get("type") or "graphql")

        try:
            response = self.requests.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except self.requests.RequestException as exc:
            raise ExternalToolError(f"Failed to connect to Hasura API at {url}: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise HasuraAPIError(
                f"Invalid response from {url} (HTTP {response.status_code})."
            ) from exc

        if isinstance(body, dict) and "error" in body and "code" in body:
            raise HasuraAPIError(str(body["error"]), code=str(body["code"]))
        if response.status_code >= 400:
            raise HasuraAPIError(f"HTTP {response.status_code} from {url}: {body}")
        return body

    def is_healthy(self) -> bool:
        try:
            response = self.requests.get(f"{self.endpoint}/healthz", timeout=self.timeout)
        except self.requests.RequestException as exc:
            self.logger.debug("Health check failed: %s", exc)
            return False
        return response.status_code == 200

    def metadata(self, request_type: str, **args) -> Any:
        return self._post("/v1/metadata", {"type": request_type, "args": args})

    def run_sql(self, sql: str, source: str) -> List[List[str]]:
        body = self._post(
            "/v2/query",
            {"type": "run_sql", "args": {"source": source, "sql": sql, "read_only": True}},
        )
        rows = body.get("result") or []
        return [list(row) for row in rows[1:]]

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = self._post("/v1/graphql", {"query": query, "variables": variables or {}})
        errors = body.get("errors")
        if errors:
            first = errors[0]
            code = (first.get("extensions") or {}).get("code", "")
            raise HasuraAPIError(first.get("message", "GraphQL error"), code=code)
        return body.get("data") or {}

    def test_connection(self) -> Dict[str, Any]:
        return self.graphql(CONNECTION_QUERY)

    def reload_metadata(self) -> Any:
        return self.metadata("reload_metadata", reload_remote_schemas=True, reload_sources=True)

    def export_metadata(self) -> Dict[str, Any]:
        return self.metadata("export_metadata")

    def clear_metadata(self) -> Any:
        return self.metadata("clear_metadata")

    def replace_metadata(self, metadata: Dict[str, Any]) -> Any:
        return self._post("/v1/metadata", {"type": "replace_metadata", "args": metadata})

    def get_source_tables(self, source: str) -> List[Dict[str, str]]:
        body = self.metadata("pg_get_source_tables", source=source)
        tables = body.get("tables", []) if isinstance(body, dict) else body
        result = []
        for table in tables or []:
            schema = table.get("schema") or table.get("table_schema")
            name = table.get("name") or table.get("table_name")
            if schema and name:
                result.append({"schema": schema, "name": name})
        return result

    def track_table(self, source: str, schema: str, name: str) -> Any:
        return self.metadata(
            "pg_track_table",
            source=source,
            table={"schema": schema, "name": name},
        )

    def create_object_relationship(
        self, source: str, schema: str, table: str, name: str, column: str
    ) -> Any:
        return self.metadata(
            "pg_create_object_relationship",
            source=source,
            table={"schema": schema, "name": table},
            name=name,
            using={"foreign_key_constraint_on": column},
        )

    def create_array_relationship(
        self,
        source: str,
        schema: str,
        table: str,
        name: str,
        remote_schema: str,
        remote_table: str,
        column: str,
    ) -> Any:
        return self.metadata(
            "pg_create_array_relationship",
            source=source,
            table={"schema": schema, "name": table},
            name=name,
            using={
                "foreign_key_constraint_on": {
                    "table": {"schema": remote_schema, "name": remote_table},
                    "column": column,
                }
            },
        )

    def root_fields(self) -> List[str]:
        data = self.graphql(ROOT_FIELDS_QUERY)
        fields = ((data.get("__schema") or {}).get("queryType") or {}).get("fields") or []
        return sorted(field["name"] for field in fields if not field["name"].startswith("__"))

    def table_root_fields(self) -> List[str]:
        return [name for name in self.root_fields() if not name.endswith(ROOT_FIELD_SUFFIXES)]

    def type_fields(self) -> Dict[str, List[str]]:
        """Maps each non-introspection OBJECT type to its sorted field names."""
        data = self.graphql(TYPES_QUERY)
        types = (data.get("__schema") or {}).get("types") or []
        result = {}
        for item in types:
            if item.get("kind") != "OBJECT" or item["name"].startswith("__"):
                continue
            result[item["name"]] = sorted(field["name"] for field in item.get("fields") or [])
        return result

    def aggregate_count(self, root_field: str, where: Optional[Dict[str, Any]] = None) -> int:
        if where is None:
            data = self.graphql(f"query {{ {root_field}_aggregate {{ aggregate {{ count }} }} }}")
        else:
            query = (
                f"query count_data($where: {root_field}_bool_exp!) "
                f"{{ {root_field}_aggregate(where: $where) {{ aggregate {{ count }} }} }}"
            )
            data = self.graphql(query, {"where": where})
        return int(data[f"{root_field}_aggregate"]["aggregate"]["count"])

    def insert_objects(self, root_field: str, objects: List[Dict[str, Any]]) -> int:
        query = (
            f"mutation insert_data($objects: [{root_field}_insert_input!]!) "
            f"{{ insert_{root_field}(objects: $objects) {{ affected_rows }} }}"
        )
        data = self.graphql(query, {"objects": objects})
        return int(data[f"insert_{root_field}"]["affected_rows"])

    def delete_where(self, root_field: str, where: Dict[str, Any]) -> int:
        query = (
            f"mutation delete_data($where: {root_field}_bool_exp!) "
            f"{{ delete_{root_field}(where: $where) {{ affected_rows }} }}"
        )
        data = self.graphql(query, {"where": where})
        return int(data[f"delete_{root_field}"]["affected_rows"])
