"""
Database-backed token store shared between processes.

Uses SQLAlchemy so any database every worker can reach works; SQLite files
are enough for several processes on one host. Refresh leases are taken with a
conditional UPDATE so only one process logs in per credential pair at a time.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import Column, DateTime, Float, String, create_engine, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from .token_cache import CachedTokenEntry, TokenStore

Base = declarative_base()


class CachedToken(Base):
    """One cached token row per cache key."""

    __tablename__ = "cached_tokens"

    key = Column(String, primary_key=True)  # consumerview:token:<user_id>
    value = Column(String, nullable=True)
    cached_at = Column(Float, nullable=True)  # epoch seconds
    ttl = Column(Float, nullable=True)
    race_grace_window = Column(Float, nullable=True)
    refresh_owner = Column(String, nullable=True)
    refreshing_until = Column(Float, nullable=True)  # lease expiry, epoch seconds
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def sqlite_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def init_database(db_path: Path) -> None:
    """
    Initialize a SQLite database file and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(sqlite_url(db_path))
    Base.metadata.create_all(engine)


class SqlTokenStore(TokenStore):
    """TokenStore persisted in the `cached_tokens` table."""

    def __init__(self, url_or_engine: Union[str, Engine], create_tables: bool = True):
        """
        Args:
            url_or_engine: SQLAlchemy URL (e.g. sqlite:///tokens.db) or an Engine
            create_tables: Create the table if it does not exist
        """
        if isinstance(url_or_engine, str):
            self.engine = create_engine(url_or_engine)
        else:
            self.engine = url_or_engine
        if create_tables:
            Base.metadata.create_all(self.engine)
        self._Session = sessionmaker(bind=self.engine)

    @classmethod
    def for_sqlite(cls, db_path: Path) -> "SqlTokenStore":
        init_database(db_path)
        return cls(sqlite_url(db_path), create_tables=False)

    def read(self, key: str) -> Optional[CachedTokenEntry]:
        with self._Session() as session:
            row = session.get(CachedToken, key)
            if row is None or row.value is None:
                return None
            return CachedTokenEntry(
                value=row.value,
                cached_at=row.cached_at,
                ttl=row.ttl,
                race_grace_window=row.race_grace_window,
            )

    def write(self, key: str, entry: CachedTokenEntry) -> None:
        fields = {
            "value": entry.value,
            "cached_at": entry.cached_at,
            "ttl": entry.ttl,
            "race_grace_window": entry.race_grace_window,
        }
        with self.engine.begin() as conn:
            result = conn.execute(update(CachedToken).where(CachedToken.key == key).values(**fields))
            if result.rowcount == 0:
                conn.execute(insert(CachedToken).values(key=key, **fields))

    def delete(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(CachedToken)
                .where(CachedToken.key == key)
                .values(value=None, cached_at=None, ttl=None, race_grace_window=None)
            )

    def try_begin_refresh(self, key: str, owner: str, now: float, lease_seconds: float) -> bool:
        lease = {"refresh_owner": owner, "refreshing_until": now + lease_seconds}
        with self.engine.begin() as conn:
            result = conn.execute(
                update(CachedToken)
                .where(CachedToken.key == key)
                .where(or_(CachedToken.refreshing_until.is_(None), CachedToken.refreshing_until <= now))
                .values(**lease)
            )
            if result.rowcount == 1:
                return True
            exists = conn.execute(select(CachedToken.key).where(CachedToken.key == key)).first()
            if exists is not None:
                return False

        # First refresh for this key: whoever inserts the row wins.
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(CachedToken).values(key=key, **lease))
        except IntegrityError:
            return False
        return True

    def end_refresh(self, key: str, owner: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(CachedToken)
                .where(CachedToken.key == key)
                .where(CachedToken.refresh_owner == owner)
                .values(refresh_owner=None, refreshing_until=None)
            )

    def is_refreshing(self, key: str, now: float) -> bool:
        with self._Session() as session:
            until = session.execute(
                select(CachedToken.refreshing_until).where(CachedToken.key == key)
            ).scalar_one_or_none()
        return until is not None and until > now
