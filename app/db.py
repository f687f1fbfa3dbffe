import logging
import os

from databases import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ["DATABASE_URL"]

database = Database(DATABASE_URL)


async def connect() -> None:
    await database.connect()
    logger.info("Connected to vouch database")


async def disconnect() -> None:
    await database.disconnect()
    logger.info("Disconnected from vouch database")
