"""Seed a development database with a handful of profiles."""

import asyncio
from typing import List

from revealmatch.models import CompatibilityAnswers, Gender, Profile
from revealmatch.stores.sql import profile_to_row
from revealmatch.utils.database import Database, get_session_factory, init_database
from revealmatch.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def sample_profiles() -> List[Profile]:
    """Profiles around Paris and Lyon, with and without coordinates."""
    return [
        Profile(
            id="seed-alice",
            first_name="Alice",
            gender=Gender.FEMALE,
            looking_for=Gender.MALE,
            age=27,
            latitude=48.8566,
            longitude=2.3522,
            city="Paris",
            answers=CompatibilityAnswers(
                smoker=False, serious_relationship=True, morning_person=True, prefers_city=True
            ),
            credits=3,
        ),
        Profile(
            id="seed-bruno",
            first_name="Bruno",
            gender=Gender.MALE,
            looking_for=Gender.FEMALE,
            age=30,
            latitude=48.85,
            longitude=2.35,
            city="Paris",
            answers=CompatibilityAnswers(
                smoker=False, serious_relationship=True, morning_person=False, prefers_city=True
            ),
            credits=1,
        ),
        Profile(
            id="seed-chloe",
            first_name="Chloé",
            gender=Gender.FEMALE,
            looking_for=Gender.MALE,
            age=25,
            city="Lyon",
            answers=CompatibilityAnswers(smoker=True, serious_relationship=False),
            credits=0,
        ),
        Profile(
            id="seed-david",
            first_name="David",
            gender=Gender.MALE,
            looking_for=Gender.FEMALE,
            age=33,
            latitude=45.764,
            longitude=4.8357,
            city="Lyon",
            answers=CompatibilityAnswers(smoker=True, serious_relationship=False, morning_person=True),
            credits=5,
        ),
    ]


async def seed() -> None:
    await init_database()
    session_factory = get_session_factory()
    async with session_factory() as session, session.begin():
        for profile in sample_profiles():
            await session.merge(profile_to_row(profile))
    logger.info("Seeded profiles", count=len(sample_profiles()))
    await Database.dispose()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
