"""MongoDB Client - Connection and Collection Management"""
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure

from ..config.settings import settings
from ..domain.errors import RepositoryUnavailableError
from ..utils.logger import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        client = PyMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        # Test connection
        try:
            client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            client.close()
            raise RepositoryUnavailableError(
                "MongoDB is unavailable",
                details={"mongo_db": settings.mongo_db}
            ) from e
        _client = client
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def translate_connection_errors(func: F) -> F:
    """Surface lost connectivity as RepositoryUnavailableError instead of a driver error"""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ConnectionFailure as e:
            logger.error(f"MongoDB unavailable during {func.__name__}: {e}")
            raise RepositoryUnavailableError(
                "Request store is unavailable",
                details={"operation": func.__name__}
            ) from e
    return wrapper  # type: ignore[return-value]


def create_indexes(database: Optional[Database] = None) -> None:
    """Create all required indexes"""
    db = database if database is not None else get_database()
    logger.info("Creating MongoDB indexes...")

    # Information requests collection
    requests = db["info_requests"]
    requests.create_index("request_id", unique=True)
    requests.create_index("status")
    requests.create_index("targets.states")
    requests.create_index("current_assignee_id")
    requests.create_index("timeline")
    requests.create_index("updated_at", background=True)

    # Child submissions collection
    submissions = db["child_submissions"]
    submissions.create_index("submission_id", unique=True)
    submissions.create_index([("request_id", ASCENDING), ("state", ASCENDING), ("branch", ASCENDING)])
    submissions.create_index("status")

    # Users (role directory)
    users = db["users"]
    users.create_index("user_id", unique=True)
    users.create_index([("roles.role", ASCENDING), ("roles.state", ASCENDING), ("roles.division", ASCENDING)])

    # Notification outbox collection
    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("request_id", ASCENDING), ("created_at", DESCENDING)])
    notification_outbox.create_index([("status", ASCENDING), ("created_at", ASCENDING)])

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except (ConnectionFailure, RepositoryUnavailableError) as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
