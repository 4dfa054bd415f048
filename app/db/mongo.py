from motor.motor_asyncio import AsyncIOMotorClient

from app.config import MONGO_URI, MONGO_DB_NAME

client = AsyncIOMotorClient(MONGO_URI)
db = client[MONGO_DB_NAME]


def get_scheduled_emails_collection():
    return db["scheduled_emails"]
