from timeline.persistence.database import (
    ConstraintViolationError,
    PersistentDatabase,
    StorageError,
    add_post,
    get_latest_posts,
    get_new_posts_since,
    get_or_create_user,
    get_post_count,
    get_user_by_username,
)
import timeline.persistence.database as database
from sqlalchemy.pool import StaticPool
import sqlalchemy as sa
import warnings
import pytest


def test_database_migrations_succeed():
    engine = PersistentDatabase.new_in_memory().engine
    with engine.connect() as conn:
        assert conn.execute(sa.text("SELECT 1")).scalar_one() == 1


def test_schema_creates_indexes():
    db = PersistentDatabase.new_in_memory()
    with db.begin() as conn:
        indexes = {
            name
            for (name,) in conn.execute(
                sa.text("SELECT name FROM sqlite_master WHERE type = 'index'")
            )
        }

    assert {"idx_posts_created_at", "idx_posts_user_id"} <= indexes


def test_ensure_schema_is_idempotent():
    db = PersistentDatabase.new_in_memory()
    add_post(db, "alice", "hello")

    db.ensure_schema()
    db.ensure_schema()

    assert get_post_count(db) == 1


def test_ensure_schema_accepts_existing_untracked_tables():
    """Tables created before migrations were tracked are left alone"""
    engine = sa.create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.execute(
            sa.text(
                "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "username TEXT UNIQUE NOT NULL, "
                "created_at TEXT DEFAULT (datetime('now', 'localtime')))"
            )
        )
        conn.execute(sa.text("INSERT INTO users (username) VALUES ('legacy')"))

    db = PersistentDatabase(engine=engine)
    db.ensure_schema()

    user = get_user_by_username(db, "legacy")
    assert user is not None
    assert user.id == 1


def test_file_database_creates_parent_directory(tmp_path):
    db_file = tmp_path / "nested" / "dir" / "timeline.sqlite3"
    db = PersistentDatabase.from_url(f"sqlite+pysqlite:///{db_file}")
    db.ensure_schema()

    add_post(db, "alice", "persisted")
    db.engine.dispose()

    reopened = PersistentDatabase.from_url(f"sqlite+pysqlite:///{db_file}")
    assert [p.content for p in get_latest_posts(reopened)] == ["persisted"]
    assert db_file.exists()


def test_get_or_create_user_is_stable():
    db = PersistentDatabase.new_in_memory()

    first = get_or_create_user(db, "alice")
    second = get_or_create_user(db, "alice")

    assert first.id == second.id == 1
    assert first.created_at == second.created_at
    assert first.username == second.username == "alice"


def test_usernames_are_case_sensitive():
    db = PersistentDatabase.new_in_memory()

    lower = get_or_create_user(db, "alice")
    upper = get_or_create_user(db, "Alice")

    assert lower.id != upper.id


def test_get_user_by_username_missing():
    db = PersistentDatabase.new_in_memory()

    assert get_user_by_username(db, "nobody") is None


def test_get_or_create_user_recovers_from_concurrent_insert(monkeypatch):
    """A lookup that misses a row another caller just inserted still returns it"""
    db = PersistentDatabase.new_in_memory()
    created = get_or_create_user(db, "alice")

    real_lookup = database.get_user_by_username
    calls: list[str] = []

    def stale_then_real(db_: PersistentDatabase, username: str):
        calls.append(username)
        if len(calls) == 1:
            return None
        return real_lookup(db_, username)

    monkeypatch.setattr(database, "get_user_by_username", stale_then_real)

    recovered = get_or_create_user(db, "alice")

    assert recovered.id == created.id
    assert len(calls) == 2


def test_duplicate_insert_raises_constraint_violation():
    db = PersistentDatabase.new_in_memory()
    get_or_create_user(db, "alice")

    with pytest.raises(ConstraintViolationError):
        with db.begin() as conn:
            conn.execute(sa.text("INSERT INTO users (username) VALUES ('alice')"))


def test_store_errors_become_storage_errors():
    db = PersistentDatabase.new_in_memory()

    with pytest.raises(StorageError):
        with db.begin() as conn:
            conn.execute(sa.text("SELECT * FROM no_such_table"))


def test_add_post_returns_full_row():
    db = PersistentDatabase.new_in_memory()

    post = add_post(db, "alice", "hello")
    user = get_user_by_username(db, "alice")

    assert user is not None
    assert post.id == 1
    assert post.user_id == user.id
    assert post.username == "alice"
    assert post.content == "hello"
    assert post.created_at


def test_post_ids_strictly_increase():
    db = PersistentDatabase.new_in_memory()

    ids = [add_post(db, f"user{i % 3}", f"post {i}").id for i in range(10)]

    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_latest_posts_newest_first_and_limited():
    db = PersistentDatabase.new_in_memory()
    for i in range(5):
        add_post(db, "alice", f"post {i}")

    latest = get_latest_posts(db, limit=3)
    assert [p.content for p in latest] == ["post 4", "post 3", "post 2"]

    everything = get_latest_posts(db)
    assert len(everything) == 5


def test_new_posts_since_cursor():
    db = PersistentDatabase.new_in_memory()
    posts = [add_post(db, "alice", f"post {i}") for i in range(4)]

    newer = get_new_posts_since(db, posts[1].id)

    assert {p.id for p in newer} == {posts[2].id, posts[3].id}
    assert [p.id for p in newer] == [posts[3].id, posts[2].id]
    assert get_new_posts_since(db, posts[-1].id) == []
    assert get_new_posts_since(db, posts[-1].id + 10) == []
    assert len(get_new_posts_since(db, 0)) == 4


def test_post_count():
    db = PersistentDatabase.new_in_memory()
    assert get_post_count(db) == 0

    add_post(db, "alice", "one")
    add_post(db, "bob", "two")

    assert get_post_count(db) == 2


def test_queries_do_not_use_deprecated_result_api():
    db = PersistentDatabase.new_in_memory()

    with warnings.catch_warnings():
        warnings.simplefilter("error", sa.exc.SADeprecationWarning)

        get_or_create_user(db, "alice")
        add_post(db, "alice", "hello")
        assert get_user_by_username(db, "alice") is not None
        assert len(get_latest_posts(db)) == 1
        assert get_new_posts_since(db, 0)[0].content == "hello"
        assert get_post_count(db) == 1
