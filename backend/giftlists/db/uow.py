from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from giftlists.db.repositories import (
    GiftRepository,
    ListRepository,
    ReservationRepository,
    UserRepository,
)


class UnitOfWork:
    """One transaction, released on every exit path.

    Leaving the ``async with`` block normally commits; leaving it through an
    exception rolls back every write made through the repositories. The
    session is closed either way.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork used outside of its context")
        return self._session

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        await self._session.begin()
        self.gifts = GiftRepository(self._session)
        self.lists = ListRepository(self._session)
        self.users = UserRepository(self._session)
        self.reservations = ReservationRepository(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        session = self.session
        try:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()
        finally:
            await session.close()
            self._session = None
