from loguru import logger

from app.schemas.init import init_beanie_odm
from app.schemas.init_schemas import VOD_MONGO_LABEL
from app.shared.config import config
from app.shared.storage.mongo import get_mongo_client

SVC_KEY = "vodcast"

QUEUE_KEY = f"{SVC_KEY}:streaq"

queue_url = config.get_redis_url("queue")


async def initialize_beanie_for_worker() -> None:
    """Initialize Beanie ODM for the worker process."""
    logger.info("Initializing Beanie ODM...")
    mongo_client = get_mongo_client(VOD_MONGO_LABEL)
    database = mongo_client.get_database()
    await init_beanie_odm(database)
    logger.info("Beanie ODM initialized")
