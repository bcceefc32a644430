from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signup_guard.api.modules.fraud.gateway import (
    DeviceFingerprintGateway,
    FraudAttemptGateway,
    NetworkRecordGateway,
    SignupEventGateway,
)


class UnitOfWork:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.devices = DeviceFingerprintGateway(session)
        self.networks = NetworkRecordGateway(session)
        self.attempts = FraudAttemptGateway(session)
        self.signups = SignupEventGateway(session)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


class UnitOfWorkFactory:
    """Opens an independent session per unit of work.

    Scoring analyzers run concurrently and an ``AsyncSession`` must not be
    shared between tasks, so each registry operation takes its own session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[UnitOfWork]:
        async with self._session_factory() as session:
            yield UnitOfWork(session)


__all__ = ("UnitOfWork", "UnitOfWorkFactory")
