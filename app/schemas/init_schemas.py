from loguru import logger

from app.schemas.init import init_beanie_odm
from app.shared.storage.mongo import get_mongo_client

VOD_MONGO_LABEL = "vod_primary"


async def init_schema():
    mongo_client = get_mongo_client(VOD_MONGO_LABEL)
    db = mongo_client.get_database()
    await init_beanie_odm(db)
    logger.info("Beanie ODM initialized on database {}", db.name)


if __name__ == "__main__":
    import asyncio

    asyncio.run(init_schema())
