"""
Durable cache-token (ETag) store.

Tokens live in the `packages` table, keyed by the package import path
(`host/owner/repo`). The store only touches two columns:
- `package_path`: primary key
- `package_etag`: last ETag seen for the package's issue list (NULL = never fetched)

Writes are compare-and-set: a token is only replaced when the stored value still equals
the token the fetch was based on. A fetch that finishes after a newer one therefore never
downgrades the stored token.
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from packagebug.config.settings import Settings
from packagebug.errors import PersistenceError

logger = logging.getLogger(__name__)


def packages_table(metadata: MetaData, name: str = "packages") -> Table:
    return Table(
        name,
        metadata,
        Column("package_path", String(512), primary_key=True),
        Column("package_etag", Text, nullable=True),
    )


def build_engine(settings: Settings) -> Engine:
    """Create the shared (pooled, thread-safe) engine for `store.url`."""
    url = settings.store.url
    if not url:
        raise RuntimeError("Token store is not configured. Set DATABASE_URL.")
    return create_engine(url, pool_pre_ping=settings.store.pool_pre_ping)


class TokenStore:
    """SQL-backed `get_token` / `save_token` keyed by package path."""

    def __init__(self, engine: Engine, table_name: str = "packages"):
        self._engine = engine
        self._metadata = MetaData()
        self._table = packages_table(self._metadata, table_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenStore":
        return cls(build_engine(settings), table_name=settings.store.table)

    def create_schema(self) -> None:
        """Create the packages table if it does not exist."""
        try:
            self._metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise PersistenceError("failed to create token table", cause=exc) from exc

    def ping(self) -> None:
        """Check the database is reachable (raises PersistenceError otherwise)."""
        try:
            with self._engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError as exc:
            raise PersistenceError("token store is unreachable", cause=exc) from exc

    def get_token(self, key: str) -> str:
        """Return the stored token for `key`; empty string if none."""
        t = self._table
        try:
            with self._engine.connect() as conn:
                value = conn.execute(
                    select(t.c.package_etag).where(t.c.package_path == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to read token for {key}", cause=exc) from exc
        return value or ""

    def save_token(self, key: str, token: str, *, expected: str = "") -> bool:
        """Store `token` for `key` if the current token still equals `expected`.

        Returns:
            True when the token was written, False when another fetch already replaced
            the `expected` token (the newer value is kept).

        Raises:
            PersistenceError: On database errors; the previous token is left intact.
        """
        t = self._table
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    t.update()
                    .where(t.c.package_path == key)
                    .where(func.coalesce(t.c.package_etag, "") == expected)
                    .values(package_etag=token)
                )
                if result.rowcount == 1:
                    return True

                exists = conn.execute(
                    select(t.c.package_path).where(t.c.package_path == key)
                ).first()
                if exists is not None:
                    logger.info("token for %s changed since it was read; keeping newer value", key)
                    return False
                if expected:
                    logger.info("token row for %s disappeared since it was read; skipping", key)
                    return False

                conn.execute(t.insert().values(package_path=key, package_etag=token))
                return True
        except IntegrityError:
            # Another writer inserted the row first.
            logger.info("token for %s was inserted concurrently; keeping newer value", key)
            return False
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to save token for {key}", cause=exc) from exc
