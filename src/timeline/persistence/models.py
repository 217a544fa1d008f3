from sqlalchemy.sql.schema import ForeignKey
import sqlalchemy as sa
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)
from sqlalchemy import text

# SQLite stores timestamps as local-time text, e.g. "2025-11-16 14:05:56"
LOCAL_NOW = text("(datetime('now', 'localtime'))")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__: str = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True)
    username: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    created_at: Mapped[str] = mapped_column(
        sa.Text, nullable=True, server_default=LOCAL_NOW
    )


class Post(Base):
    __tablename__: str = "posts"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True)

    user_id: Mapped[int] = mapped_column(
        sa.Integer, ForeignKey("users.id"), nullable=False
    )

    # Copy of the author's username at post time
    username: Mapped[str] = mapped_column(sa.Text, nullable=False)

    content: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[str] = mapped_column(
        sa.Text, nullable=True, server_default=LOCAL_NOW
    )


_ = sa.Index("idx_posts_created_at", Post.created_at.desc())
_ = sa.Index("idx_posts_user_id", Post.user_id)
