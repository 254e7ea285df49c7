from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import settings
from app.modules.alerts.models import Alert
from app.modules.heart_rate.models import HeartRateReading
from app.modules.medications.models import MedicationCheckIn
from app.modules.notifications.models import DeviceToken, NotificationPreferences
from app.modules.patients.models import PatientUser
from app.modules.users.models import User
from app.modules.whoop.models import WhoopConnection

MONGO_CLIENT: AsyncIOMotorClient | None = None


async def init_db() -> AsyncIOMotorClient:
    """
    Create a single Motor client, initialize Beanie, and return the client.

    This should be called exactly once at app startup.
    """
    global MONGO_CLIENT

    client = AsyncIOMotorClient(
        settings.MONGODB_URL,
        uuidRepresentation="standard",
        serverSelectionTimeoutMS=5000,
    )

    db: AsyncIOMotorDatabase = client[settings.MONGODB_DB_NAME]

    await init_beanie(
        database=db,
        document_models=[
            User,
            PatientUser,
            Alert,
            MedicationCheckIn,
            HeartRateReading,
            WhoopConnection,
            DeviceToken,
            NotificationPreferences,
        ],
    )

    MONGO_CLIENT = client
    return client
