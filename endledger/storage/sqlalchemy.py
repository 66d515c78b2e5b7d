"""SQLAlchemy storage backend for EndLedger."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, AsyncIterator, Sequence

from sqlalchemy import Date, Integer, JSON, String, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .base import SIGN_STATS_RETENTION_DAYS, AccountStore, SignCounts, SignStatsStore


class Base(DeclarativeBase):
    pass


class UserTable(Base):
    __tablename__ = "endledger_users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[Any] = mapped_column(JSON)


class ValueTable(Base):
    __tablename__ = "endledger_values"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON)


class SignStatsTable(Base):
    __tablename__ = "endledger_sign_stats"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    success: Mapped[int] = mapped_column(Integer, default=0)
    fail: Mapped[int] = mapped_column(Integer, default=0)


class AsyncSQLAlchemyStorage:
    """Bundle of async stores backed by SQLAlchemy."""

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(dsn, echo=echo, future=True)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    async def init_models(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    def account_store(self) -> "AsyncSQLAlchemyAccountStore":
        return AsyncSQLAlchemyAccountStore(self._session_factory)

    def sign_stats_store(self) -> "AsyncSQLAlchemySignStatsStore":
        return AsyncSQLAlchemySignStatsStore(self._session_factory)


class AsyncSQLAlchemyAccountStore(AccountStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, user_id: str) -> Any | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, str(user_id))
            return row.data if row else None

    async def save(self, user_id: str, data: dict) -> None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, str(user_id))
            if row is None:
                session.add(UserTable(user_id=str(user_id), data=data))
            else:
                row.data = data
            await session.commit()

    async def list_user_ids(self) -> Sequence[str]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(UserTable.user_id))).scalars().all()
            return list(rows)

    async def get_value(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            row = await session.get(ValueTable, key)
            return row.value if row else None

    async def set_value(self, key: str, value: Any) -> None:
        async with self._session_factory() as session:
            row = await session.get(ValueTable, key)
            if row is None:
                session.add(ValueTable(key=key, value=value))
            else:
                row.value = value
            await session.commit()


class AsyncSQLAlchemySignStatsStore(SignStatsStore):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        retention_days: int = SIGN_STATS_RETENTION_DAYS,
    ) -> None:
        self._session_factory = session_factory
        self._retention = timedelta(days=retention_days)

    async def increment(self, day: date, field: str, count: int = 1) -> None:
        if field not in {"success", "fail"}:
            raise ValueError(f"Unknown sign counter {field}")
        if count <= 0:
            return
        async with self._session_factory() as session:
            row = await session.get(SignStatsTable, day)
            if row is None:
                row = SignStatsTable(day=day, success=0, fail=0)
                session.add(row)
            setattr(row, field, (getattr(row, field) or 0) + count)
            await session.execute(delete(SignStatsTable).where(SignStatsTable.day <= day - self._retention))
            await session.commit()

    async def counts(self, day: date) -> SignCounts:
        async with self._session_factory() as session:
            row = await session.get(SignStatsTable, day)
            if row is None:
                return SignCounts()
            return SignCounts(success=row.success or 0, fail=row.fail or 0)
