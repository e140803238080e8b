"""Seed development operators and a starter reward catalog into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fieldops_api.core.settings import settings
from fieldops_api.models.loyalty import Reward
from fieldops_api.models.user import User


class SeedUser(TypedDict):
    email: str
    display_name: str
    role: str
    status: str


class SeedReward(TypedDict):
    item_name: str
    point_cost: int
    stock: int


DEV_USERS: list[SeedUser] = [
    {
        "email": os.getenv("DEV_SHORTCUT_ADMIN_EMAIL", "admin@fieldops.dev").lower(),
        "display_name": "Admin QA",
        "role": "admin",
        "status": "active",
    },
    {
        "email": os.getenv("DEV_SHORTCUT_TSO_EMAIL", "tso@fieldops.dev").lower(),
        "display_name": "TSO QA",
        "role": "tso",
        "status": "active",
    },
    {
        "email": os.getenv("DEV_SHORTCUT_FIELD_EMAIL", "field@fieldops.dev").lower(),
        "display_name": "Field Officer QA",
        "role": "field_officer",
        "status": "active",
    },
]

DEV_REWARDS: list[SeedReward] = [
    {"item_name": "Steel Trowel", "point_cost": 250, "stock": 40},
    {"item_name": "Safety Helmet", "point_cost": 600, "stock": 25},
    {"item_name": "Spirit Level", "point_cost": 1200, "stock": 10},
]


async def seed_users(session: AsyncSession) -> None:
    for user in DEV_USERS:
        with session.no_autoflush:
            existing = await session.execute(select(User).where(User.email == user["email"]))
        record = existing.scalar_one_or_none()

        if record:
            record.display_name = user["display_name"]
            record.role = user["role"].lower()
            record.status = user["status"].lower()
        else:
            session.add(
                User(
                    email=user["email"],
                    display_name=user["display_name"],
                    role=user["role"].lower(),
                    status=user["status"].lower(),
                )
            )
    await session.commit()


async def seed_rewards(session: AsyncSession) -> None:
    for reward in DEV_REWARDS:
        existing = await session.execute(select(Reward).where(Reward.item_name == reward["item_name"]))
        if existing.scalar_one_or_none() is not None:
            continue
        session.add(
            Reward(
                item_name=reward["item_name"],
                point_cost=reward["point_cost"],
                total_available_quantity=reward["stock"],
                stock=reward["stock"],
            )
        )
    await session.commit()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_users(session)
            await seed_rewards(session)
        print("Development operators and rewards ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
