from graphqltiers.errors import HasuraAPIError
from graphqltiers.services.tracking import TrackingService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def _service():
    return TrackingService(logger=DummyLogger(), console=DummyConsole())


def test_track_all_tables_tracks_every_table(fake_hasura):
    summary = _service().track_all_tables(fake_hasura, "default")

    assert summary.tracked == 3
    assert summary.ok
    assert fake_hasura.tracked == {"admin.admin_users", "admin.admin_permissions", "public.settings"}


def test_already_tracked_tables_are_not_failures(fake_hasura):
    service = _service()
    service.track_all_tables(fake_hasura, "default")

    summary = service.track_all_tables(fake_hasura, "default")

    assert summary.tracked == 0
    assert summary.already_tracked == 3
    assert summary.ok


def test_list_tables_falls_back_to_run_sql(fake_hasura):
    def unsupported(_source):
        raise HasuraAPIError("unknown metadata type", code="not-supported")

    fake_hasura.get_source_tables = unsupported

    tables = _service().list_tables(fake_hasura, "default")

    assert ("admin", "admin_users") in tables
    assert len(tables) == 3


def test_track_relationships_creates_object_and_array(fake_hasura):
    summary = _service().track_relationships(fake_hasura, "default")

    assert summary.tracked == 2
    assert ("object", "admin.admin_permissions", "admin_users") in fake_hasura.relationships
    assert ("array", "admin.admin_users", "admin_permissionss") in fake_hasura.relationships


def test_existing_relationships_are_counted_separately(fake_hasura):
    service = _service()
    service.track_relationships(fake_hasura, "default")

    summary = service.track_relationships(fake_hasura, "default")

    assert summary.tracked == 0
    assert summary.already_tracked == 2
    assert summary.ok


def test_unexpected_tracking_error_is_reported(fake_hasura):
    def broken(_source, schema, name):
        raise HasuraAPIError("permission denied", code="access-denied")

    fake_hasura.track_table = broken

    summary = _service().track_all_tables(fake_hasura, "default")

    assert not summary.ok
    assert len(summary.failed) == 3
