import asyncio
import inspect
import pathlib
import sys

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lotledger.db.base import Base  # noqa: E402
import lotledger.models  # noqa: E402,F401  # pylint: disable=unused-import


class SessionFactoryBuilder:
    """Creates in-memory SQLite schemas inside the running test loop."""

    def __init__(self) -> None:
        self.engines: list[AsyncEngine] = []

    async def __call__(self) -> async_sessionmaker:
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.engines.append(engine)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        return async_sessionmaker(engine, expire_on_commit=False)

    async def dispose_all(self) -> None:
        for engine in self.engines:
            await engine.dispose()
        self.engines.clear()


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            testargs = {arg: pyfuncitem.funcargs[arg] for arg in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**testargs))
        finally:
            builder = pyfuncitem.funcargs.get("session_factory")
            if isinstance(builder, SessionFactoryBuilder):
                loop.run_until_complete(builder.dispose_all())
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


@pytest.fixture
def session_factory() -> SessionFactoryBuilder:
    return SessionFactoryBuilder()
