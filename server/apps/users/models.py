from datetime import datetime
from bson import ObjectId
from bson.errors import InvalidId

from database import get_db


class UserRole:
    CLIENT = "client"
    THERAPIST = "therapist"
    ADMIN = "admin"

    ALL = (CLIENT, THERAPIST, ADMIN)


def users_collection():
    return get_db()["users"]


class User:
    """Account record. Authentication itself is handled upstream."""

    def __init__(self, email, role=UserRole.CLIENT, first_name=None, last_name=None):
        self.email = email
        self.role = role
        self.first_name = first_name
        self.last_name = last_name
        self.created_at = datetime.utcnow()

    def save(self):
        """ Save a new user to MongoDB """
        result = users_collection().insert_one(self.__dict__)
        return result.inserted_id

    @staticmethod
    def find_by_id(user_id):
        """ Find user by ID """
        try:
            if not isinstance(user_id, ObjectId):
                user_id = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return users_collection().find_one({"_id": user_id})

    @staticmethod
    def actor_id(actor):
        """Id of the acting user, or None for system actions"""
        return actor.get("_id") if actor else None

    @staticmethod
    def has_role(actor, role):
        return bool(actor) and actor.get("role") == role
