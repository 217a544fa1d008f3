from collections.abc import Iterator
from alembic.config import Config
from alembic.util.exc import CommandError
from alembic import command
from pathlib import Path
from sqlalchemy.pool import StaticPool
import sqlalchemy as sa
from contextlib import contextmanager
from dataclasses import dataclass
import timeline.persistence.models as models
import logging

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Any failure coming out of the store"""


class ConstraintViolationError(StorageError):
    """The store rejected a write because of a constraint (e.g. unique username)"""


class PersistentDatabase:
    """A persistent database that is saved to local disk"""

    DATABASE_URL = "sqlite+pysqlite:///database.sqlite3"

    def __init__(self, engine: sa.Engine | None = None):
        if engine is None:
            engine = PersistentDatabase._create_engine(PersistentDatabase.DATABASE_URL)

        self.engine = engine

    @classmethod
    def from_url(cls, url: str):
        return cls(engine=cls._create_engine(url))

    @classmethod
    def new_in_memory(cls):
        """
        A constructor for creating a persistent database in memory for testing
        """
        new_persistent_db = cls(
            engine=sa.create_engine(
                "sqlite+pysqlite:///:memory:",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        )

        new_persistent_db.ensure_schema()

        return new_persistent_db

    @staticmethod
    def _create_engine(url: str) -> sa.Engine:
        parsed = sa.make_url(url)
        connect_args = {}

        if parsed.get_backend_name() == "sqlite":
            # Requests are served from worker threads, not the creating thread.
            connect_args["check_same_thread"] = False

            if parsed.database and parsed.database != ":memory:":
                Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

        return sa.create_engine(url, pool_pre_ping=True, connect_args=connect_args)

    @contextmanager
    def begin(self) -> Iterator[sa.Connection]:
        """
        Checks out a connection and opens a transaction on it. Commits on success,
        rolls back on error and always hands the connection back to the pool.

        Raises:
            StorageError: for any SQLAlchemy error inside the block
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except sa.exc.IntegrityError as e:
            raise ConstraintViolationError(str(e.orig)) from e
        except sa.exc.SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    def ensure_schema(self):
        """
        Brings the schema up to date. Safe to call on every start: the initial
        migration only creates tables and indexes that are missing.
        """
        alembic_dir = Path(__file__).parent / "alembic"

        alembic_cfg = Config()
        alembic_cfg.set_main_option("script_location", str(alembic_dir))

        # Hand our engine to env.py instead of a URL from alembic.ini
        alembic_cfg.attributes["connectable"] = self.engine

        try:
            command.upgrade(alembic_cfg, "head")
        except (sa.exc.SQLAlchemyError, CommandError) as e:
            raise StorageError(f"Failed to initialize schema: {e}") from e

        logger.info(f"Schema ready on {self.engine.url!r}")


@dataclass
class UserResult:
    id: int
    username: str
    created_at: str


@dataclass
class PostResult:
    id: int
    user_id: int
    username: str
    content: str
    created_at: str


_POST_COLUMNS = (
    models.Post.id,
    models.Post.user_id,
    models.Post.username,
    models.Post.content,
    models.Post.created_at,
)


def get_user_by_username(db: PersistentDatabase, username: str) -> UserResult | None:
    """
    Returns the user with exactly this username, if any
    """
    with db.begin() as conn:
        result = (
            conn.execute(
                sa.select(
                    models.User.id, models.User.username, models.User.created_at
                ).where(models.User.username == username)
            )
            .one_or_none()
        )

    if result is None:
        return None

    user_id, username_result, created_at = result
    return UserResult(id=user_id, username=username_result, created_at=created_at)


def get_or_create_user(db: PersistentDatabase, username: str) -> UserResult:
    """
    Get or add a user by username. An existing user is returned untouched.

    The username is expected to be trimmed and non-empty already.
    """
    existing = get_user_by_username(db, username)
    if existing is not None:
        return existing

    try:
        with db.begin() as conn:
            user_id, created_at = (
                conn.execute(
                    sa.insert(models.User).returning(
                        models.User.id, models.User.created_at
                    ),
                    {"username": username},
                )
                .one()
            )
    except ConstraintViolationError:
        # Someone else created the same username between our lookup and insert.
        existing = get_user_by_username(db, username)
        if existing is None:
            raise
        logger.info(f"User {username!r} was created concurrently, using existing row")
        return existing

    logger.info(f"Created user {user_id} ({username!r})")
    return UserResult(id=user_id, username=username, created_at=created_at)


def add_post(db: PersistentDatabase, username: str, content: str) -> PostResult:
    """
    Adds a post for the user (creating the user if needed), returns the stored row
    """
    user = get_or_create_user(db, username)

    with db.begin() as conn:
        row = (
            conn.execute(
                sa.insert(models.Post).returning(*_POST_COLUMNS),
                {"user_id": user.id, "username": user.username, "content": content},
            )
            .one()
        )

    post = PostResult(*row)
    logger.info(f"User {user.id} added post {post.id}")
    return post


def get_latest_posts(db: PersistentDatabase, limit: int = 1000) -> list[PostResult]:
    """
    Gets the newest posts, sorted by creation date (descending)
    """
    with db.begin() as conn:
        rows = (
            conn.execute(
                sa.select(*_POST_COLUMNS)
                .order_by(models.Post.created_at.desc(), models.Post.id.desc())
                .limit(limit)
            )
            .all()
        )

    return [PostResult(*row) for row in rows]


def get_new_posts_since(db: PersistentDatabase, last_id: int) -> list[PostResult]:
    """
    Gets every post with an id above last_id (the polling cursor), newest first
    """
    with db.begin() as conn:
        rows = (
            conn.execute(
                sa.select(*_POST_COLUMNS)
                .where(models.Post.id > last_id)
                .order_by(models.Post.created_at.desc(), models.Post.id.desc())
            )
            .all()
        )

    return [PostResult(*row) for row in rows]


def get_post_count(db: PersistentDatabase) -> int:
    with db.begin() as conn:
        return conn.execute(
            sa.select(sa.func.count()).select_from(models.Post)
        ).scalar_one()
