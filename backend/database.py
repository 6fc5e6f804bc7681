from motor.motor_asyncio import AsyncIOMotorClient
import logging

from config import Settings

logger = logging.getLogger(__name__)


class Database:
    client: AsyncIOMotorClient = None
    db = None

    def __init__(self, settings: Settings):
        self.settings = settings

    async def connect(self):
        try:
            self.client = AsyncIOMotorClient(self.settings.mongo_url, tz_aware=True)
            self.db = self.client[self.settings.db_name]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {self.settings.db_name}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        if self.db is None:
            raise RuntimeError("Database is not connected")
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for user lookups and webhook de-duplication."""
        try:
            await self.db.users.create_index("user_id", unique=True)
            await self.db.users.create_index("email", unique=True)
            await self.db.users.create_index("stripe_customer_id", sparse=True)
            # Stripe webhook idempotency - duplicate event_id must not process twice
            await self.db.stripe_events.create_index("event_id", unique=True)
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")
