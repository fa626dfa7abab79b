import pytest

from graphqltiers.errors import HasuraAPIError
from graphqltiers.services.hasura import ROOT_FIELD_SUFFIXES, root_field_for


def _matches(row, where):
    for column, condition in where.items():
        if column == "_or":
            if not any(_matches(row, clause) for clause in condition):
                return False
        elif "_in" in condition:
            if row.get(column) not in condition["_in"]:
                return False
        elif row.get(column) != condition.get("_eq"):
            return False
    return True


class FakeHasura:
    """In-memory stand-in for HasuraClient backed by a dict of table rows."""

    def __init__(self, tables=None, foreign_keys=None, endpoint="http://localhost:8103", healthy=True):
        self.endpoint = endpoint
        self.admin_secret = "secret"
        self.healthy = healthy
        self.rows = {key: list(value) for key, value in (tables or {}).items()}
        self.foreign_keys = list(foreign_keys or [])
        self.tracked = set()
        self.relationships = set()
        self.calls = []
        self.fail_reload = False

    def _table_for(self, root_field):
        for key in self.rows:
            schema, name = key.split(".", 1)
            if root_field_for(schema, name) == root_field:
                return key
        raise HasuraAPIError(f"field '{root_field}' not found", code="validation-failed")

    def is_healthy(self):
        self.calls.append("is_healthy")
        return self.healthy

    def test_connection(self):
        self.calls.append("test_connection")
        return {"__schema": {"queryType": {"name": "query_root"}}}

    def reload_metadata(self):
        self.calls.append("reload_metadata")
        if self.fail_reload:
            raise HasuraAPIError("inconsistent metadata", code="unexpected")
        return {"message": "success"}

    def export_metadata(self):
        self.calls.append("export_metadata")
        tables = []
        for key in sorted(self.tracked):
            schema, name = key.split(".", 1)
            objects = [rel for rel in self.relationships if rel[0] == "object" and rel[1] == key]
            arrays = [rel for rel in self.relationships if rel[0] == "array" and rel[1] == key]
            tables.append(
                {
                    "table": {"schema": schema, "name": name},
                    "object_relationships": [{"name": rel[2]} for rel in objects],
                    "array_relationships": [{"name": rel[2]} for rel in arrays],
                }
            )
        return {"version": 3, "sources": [{"name": "default", "tables": tables}]}

    def clear_metadata(self):
        self.calls.append("clear_metadata")
        self.tracked.clear()
        self.relationships.clear()

    def replace_metadata(self, metadata):
        self.calls.append("replace_metadata")
        self.tracked = {
            f"{entry['table']['schema']}.{entry['table']['name']}"
            for source in metadata.get("sources", [])
            for entry in source.get("tables", [])
        }
        self.relationships.clear()

    def get_source_tables(self, source):
        return [{"schema": key.split(".")[0], "name": key.split(".")[1]} for key in sorted(self.rows)]

    def track_table(self, source, schema, name):
        key = f"{schema}.{name}"
        if key in self.tracked:
            raise HasuraAPIError(f"view/table already tracked: {name}", code="already-tracked")
        self.calls.append(f"track_table:{key}")
        self.tracked.add(key)

    def run_sql(self, sql, source):
        if "FOREIGN KEY" in sql:
            return [list(row) for row in self.foreign_keys]
        return [key.split(".", 1) for key in sorted(self.rows)]

    def create_object_relationship(self, source, schema, table, name, column):
        self._relationship(("object", f"{schema}.{table}", name))

    def create_array_relationship(self, source, schema, table, name, remote_schema, remote_table, column):
        self._relationship(("array", f"{schema}.{table}", name))

    def _relationship(self, key):
        if key in self.relationships:
            raise HasuraAPIError("relationship already exists", code="already-exists")
        self.relationships.add(key)

    def root_fields(self):
        fields = []
        for key in self.tracked:
            base = root_field_for(*key.split(".", 1))
            fields.append(base)
            fields.extend(base + suffix for suffix in ROOT_FIELD_SUFFIXES)
        return sorted(fields)

    def table_root_fields(self):
        return [name for name in self.root_fields() if not name.endswith(ROOT_FIELD_SUFFIXES)]

    def type_fields(self):
        return {root_field_for(*key.split(".", 1)): ["id"] for key in self.tracked}

    def graphql(self, query, variables=None):
        self.calls.append("graphql")
        return {}

    def aggregate_count(self, root_field, where=None):
        rows = self.rows[self._table_for(root_field)]
        if where is None:
            return len(rows)
        return len([row for row in rows if _matches(row, where)])

    def insert_objects(self, root_field, objects):
        self.calls.append(f"insert:{root_field}")
        self.rows[self._table_for(root_field)].extend(objects)
        return len(objects)

    def delete_where(self, root_field, where):
        self.calls.append(f"delete:{root_field}")
        key = self._table_for(root_field)
        kept = [row for row in self.rows[key] if not _matches(row, where)]
        deleted = len(self.rows[key]) - len(kept)
        self.rows[key] = kept
        return deleted


@pytest.fixture
def fake_hasura():
    return FakeHasura(
        tables={"admin.admin_users": [], "admin.admin_permissions": [], "public.settings": []},
        foreign_keys=[
            ["admin", "admin_permissions", "user_id", "admin", "admin_users", "id", "fk_permissions_user"],
        ],
    )


@pytest.fixture
def make_hasura():
    return FakeHasura
