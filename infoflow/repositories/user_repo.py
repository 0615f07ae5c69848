"""User Repository - MongoDB data access for the role directory"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo import ASCENDING

from .base import UserRepository
from .mongo_client import get_database, translate_connection_errors
from ..domain.models import Principal
from ..domain.enums import Role
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MongoUserRepository(UserRepository):
    """Repository for principals stored in the ``users`` collection"""

    def __init__(self, database: Optional[Database] = None):
        db = database if database is not None else get_database()
        self._users: Collection = db["users"]

    @translate_connection_errors
    def get_user(self, user_id: str) -> Optional[Principal]:
        """Get principal by ID"""
        doc = self._users.find_one({"user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return Principal.model_validate(doc)
        return None

    @translate_connection_errors
    def find_users(
        self,
        role: Role,
        state: Optional[str] = None,
        division: Optional[str] = None
    ) -> List[Principal]:
        """Find active principals holding the role in context"""
        # $elemMatch keeps role, state and division on the same assignment
        match: Dict[str, Any] = {"role": role.value}
        if state is not None:
            match["state"] = state
        if division is not None:
            match["division"] = division

        cursor = self._users.find(
            {"active": True, "roles": {"$elemMatch": match}}
        ).sort("user_id", ASCENDING)

        users = []
        for doc in cursor:
            doc.pop("_id", None)
            users.append(Principal.model_validate(doc))
        return users

    @translate_connection_errors
    def upsert_user(self, principal: Principal) -> Principal:
        """Insert or replace a principal"""
        doc = principal.model_dump()
        doc["_id"] = principal.user_id
        self._users.replace_one({"user_id": principal.user_id}, doc, upsert=True)
        logger.info(f"Upserted user: {principal.user_id}", extra={"user_id": principal.user_id})
        return principal
