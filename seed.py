import asyncio
import logging

from config import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_USERNAME
from schemas import AdminUserCreate
from settings import DEFAULT_SETTINGS
from storage import MongoStorage, Storage

logger = logging.getLogger(__name__)


async def seed(store: Storage) -> None:
    await store.ensure_indexes()

    if await store.get_admin_user_by_username(ADMIN_USERNAME) is None:
        await store.create_admin_user(
            AdminUserCreate(
                username=ADMIN_USERNAME,
                email=ADMIN_EMAIL,
                password=ADMIN_PASSWORD,
                name="Admin User",
                role="admin",
                phone="+234 800 000 0000",
            )
        )
        logger.info("Admin user created (username: %s)", ADMIN_USERNAME)
    else:
        logger.info("Admin user already exists, skipping")

    for key, value in DEFAULT_SETTINGS.items():
        if await store.get_setting(key) is None:
            await store.upsert_setting(key, value)

    logger.info("Database seeding complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    asyncio.run(seed(MongoStorage()))
