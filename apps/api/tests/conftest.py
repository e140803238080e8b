import sys
from pathlib import Path


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from fieldops_api.app import create_app  # noqa: E402
from fieldops_api.db.base import Base  # noqa: E402
from fieldops_api.db.session import get_session  # noqa: E402
from fieldops_api.models.loyalty import Reward  # noqa: E402
from fieldops_api.models.mason import KycStatus, Mason  # noqa: E402
from fieldops_api.models.user import User, UserStatusEnum  # noqa: E402
from fieldops_api.observability.loyalty import get_loyalty_store  # noqa: E402


@pytest.fixture(autouse=True)
def reset_loyalty_store():
    get_loyalty_store().reset()
    yield
    get_loyalty_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(
        email: str = "operator@fieldops.dev",
        *,
        role: str = "tso",
        status: UserStatusEnum = UserStatusEnum.ACTIVE,
    ) -> User:
        async with session_factory() as session:
            user = User(email=email, display_name=email.split("@")[0], role=role, status=status.value)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def make_mason(session_factory):
    async def _make_mason(
        name: str = "Ravi Kumar",
        *,
        points_balance: int = 0,
        bags_lifted: int = 0,
        referred_by_id=None,
        kyc_status: KycStatus = KycStatus.NONE,
        phone_number: str = "9800000000",
    ) -> Mason:
        async with session_factory() as session:
            mason = Mason(
                name=name,
                phone_number=phone_number,
                points_balance=points_balance,
                bags_lifted=bags_lifted,
                referred_by_id=referred_by_id,
                kyc_status=kyc_status,
            )
            session.add(mason)
            await session.commit()
            await session.refresh(mason)
            return mason

    return _make_mason


@pytest.fixture
def make_reward(session_factory):
    async def _make_reward(
        item_name: str = "Steel Trowel",
        *,
        point_cost: int = 100,
        stock: int = 5,
        is_active: bool = True,
    ) -> Reward:
        async with session_factory() as session:
            reward = Reward(
                item_name=item_name,
                point_cost=point_cost,
                total_available_quantity=stock,
                stock=stock,
                is_active=is_active,
            )
            session.add(reward)
            await session.commit()
            await session.refresh(reward)
            return reward

    return _make_reward
