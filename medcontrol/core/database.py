import logging
import asyncio
from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from beanie import init_beanie
from medcontrol.core.config import settings
from medcontrol.db.storage import MongoStorage

logger = logging.getLogger(__name__)

_client = None
_storage = None


MAX_RETRIES = 3
RETRY_DELAY = 2
CONNECTION_TIMEOUT = 10
MAX_POOL_SIZE = 50
MIN_POOL_SIZE = 5


#------This Function handles the database connection---------
async def connect_db():
    global _client, _storage

    retry_count = 0

    while retry_count < MAX_RETRIES:
        try:
            logger.info(f"Attempting database connection (attempt {retry_count + 1}/{MAX_RETRIES})...")

            _client = AsyncMongoClient(
                settings.mongodb_uri,
                maxPoolSize=MAX_POOL_SIZE,
                minPoolSize=MIN_POOL_SIZE,
                connectTimeoutMS=CONNECTION_TIMEOUT * 1000,
                serverSelectionTimeoutMS=CONNECTION_TIMEOUT * 1000,
                retryWrites=True,
            )

            await _client.admin.command('ping')
            logger.info("Database connection established successfully")
            break

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            retry_count += 1
            logger.warning(f"Database connection attempt {retry_count} failed: {str(e)}")

            if retry_count < MAX_RETRIES:
                await asyncio.sleep(RETRY_DELAY * retry_count)
            else:
                logger.error(f"Failed to connect to database after {MAX_RETRIES} attempts")
                raise RuntimeError(f"Failed to connect to database: {str(e)}")

    from medcontrol.models.user import User
    from medcontrol.models.medication import Medication
    from medcontrol.models.dose_schedule import DoseSchedule
    from medcontrol.models.connection import Connection
    from medcontrol.models.notification import Notification
    from medcontrol.models.push_token import PushToken

    await init_beanie(
        database=_client[settings.db_name],
        document_models=[
            User,
            Medication,
            DoseSchedule,
            Connection,
            Notification,
            PushToken,
        ],
    )

    _storage = MongoStorage()
    logger.info("Database initialization completed")


#------This Function closes the database connection---------
async def close_db():
    global _client
    if _client:
        try:
            await _client.close()
            logger.info("Database connection closed")
        except Exception as e:
            logger.error(f"Error closing database connection: {str(e)}")


#------This Function returns the storage instance---------
def get_storage() -> MongoStorage:
    if _storage is None:
        raise RuntimeError("Database not initialized. Call connect_db() first.")
    return _storage


#------This Function checks the database health status---------
async def check_db_health() -> dict:
    try:
        if _client is None:
            return {"status": "unhealthy", "error": "Database not initialized"}

        await _client.admin.command('ping')
        return {"status": "healthy", "database": settings.db_name}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
