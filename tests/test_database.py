import pytest
from sqlalchemy import inspect, select

from ttlkv import StorageError, StoreSettings
from ttlkv.core.database import Database, _prefix_successor, _under_prefix
from ttlkv.models import KVEntry


@pytest.fixture
def database(db_path):
    db = Database(StoreSettings(path=db_path, prefix="db:"))
    db.startup()
    yield db
    db.shutdown()


def test_schema(database):
    columns = {c["name"] for c in inspect(database.engine).get_columns("kv")}
    assert columns == {"key", "value", "expires_at"}

    pk = inspect(database.engine).get_pk_constraint("kv")
    assert pk["constrained_columns"] == ["key"]


def test_startup_is_idempotent(db_path, database):
    database.upsert_entry("db:k", b"1", 0)

    again = Database(StoreSettings(path=db_path, prefix="db:"))
    again.startup()
    try:
        assert again.get_entry("db:k") == (b"1", 0)
    finally:
        again.shutdown()


def test_upsert_replaces_row(database):
    database.upsert_entry("db:k", b"1", 10)
    database.upsert_entry("db:k", b"2", 20)

    assert database.get_entry("db:k") == (b"2", 20)
    assert database.get_expires_at("db:k") == 20
    assert database.count_entries("db:") == 1


def test_missing_rows_are_not_errors(database):
    assert database.get_entry("db:nope") is None
    assert database.get_expires_at("db:nope") is None
    assert database.entry_exists("db:nope") is False
    assert database.delete_entry("db:nope") is False


def test_delete_expired_only_touches_past_deadlines(database):
    database.upsert_entry("db:forever", b"1", 0)
    database.upsert_entry("db:past", b"1", 100)
    database.upsert_entry("db:future", b"1", 300)
    database.upsert_entry("other:past", b"1", 100)

    assert database.delete_expired("db:", now=200) == 1
    assert sorted(database.list_keys("db:")) == ["db:forever", "db:future"]
    assert database.entry_exists("other:past")


def test_query_failure_is_storage_error(database):
    with database.engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE kv")

    with pytest.raises(StorageError) as excinfo:
        database.get_entry("db:k")
    assert excinfo.value.operation == "get"
    assert excinfo.value.__cause__ is not None


def test_store_propagates_storage_error(store):
    with store._db.engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE kv")

    with pytest.raises(StorageError):
        store.set("k", "v", ttl=1)
    with pytest.raises(StorageError):
        store.has("k")
    with pytest.raises(StorageError):
        store.keys()


def test_closed_store_raises(make_store):
    store = make_store()
    store.close()
    store.close()

    with pytest.raises(StorageError):
        store.get("k")


@pytest.mark.parametrize("prefix,successor", [
    ("db:", "db;"),
    ("a", "b"),
    ("ns\U0010ffff", "nt"),
    ("x\ud7ff", "x\ue000"),
    ("\U0010ffff\U0010ffff", None),
])
def test_prefix_successor(prefix, successor):
    assert _prefix_successor(prefix) == successor


def test_prefix_scan_uses_primary_key_index(database):
    stmt = select(KVEntry.key).where(_under_prefix("db:"))
    sql = str(stmt.compile(database.engine, compile_kwargs={"literal_binds": True}))

    with database.engine.connect() as conn:
        plan = [row[-1] for row in conn.exec_driver_sql(f"EXPLAIN QUERY PLAN {sql}")]

    assert any("SEARCH" in detail for detail in plan), plan


def test_prefix_scan_bounds(database):
    for key in ["db", "db:", "db:a", "db:\U0010ffff", "db;", "dc:a", "DB:a"]:
        database.upsert_entry(key, b"1", 0)

    assert sorted(database.list_keys("db:")) == ["db:", "db:a", "db:\U0010ffff"]
    assert database.count_entries("db:") == 3
    assert database.delete_prefix("db:") == 3
    assert sorted(database.list_keys("d")) == ["db", "db;", "dc:a"]
