from datetime import datetime
from bson import ObjectId

from database import get_db


def clients_collection():
    return get_db()["clients"]


def goals_collection():
    return get_db()["goals"]


class Client:
    def __init__(self, user_id, date_of_birth=None, guardian_name=None, assigned_therapist=None):
        self.user_id = user_id
        self.date_of_birth = date_of_birth
        self.guardian_name = guardian_name
        self.assigned_therapist = assigned_therapist
        self.created_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def save(self):
        """Save client profile to MongoDB"""
        result = clients_collection().insert_one(self.__dict__)
        return result.inserted_id

    @staticmethod
    def find_by_id(client_id):
        if not isinstance(client_id, ObjectId):
            client_id = ObjectId(client_id)
        return clients_collection().find_one({"_id": client_id})

    @staticmethod
    def find_by_user_id(user_id):
        if isinstance(user_id, str) and ObjectId.is_valid(user_id):
            user_id = ObjectId(user_id)
        return clients_collection().find_one({"user_id": user_id})

    @staticmethod
    def assign_therapist_if_unassigned(client_id, therapist_id):
        """
        Set the client's therapist only when none is assigned yet.
        Returns True if this call made the assignment.
        """
        result = clients_collection().update_one(
            {"_id": client_id, "assigned_therapist": None},
            {"$set": {
                "assigned_therapist": therapist_id,
                "updated_at": datetime.utcnow()
            }}
        )
        return result.modified_count == 1


class GoalStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    DISCONTINUED = "discontinued"
    ON_HOLD = "on-hold"


class Goal:
    """
    Clinical goal. Goals are only ever created by an explicit clinician
    action after evaluation; nothing in the session lifecycle writes here.
    """

    def __init__(self, client_id, therapist_id, title, description, category, target_date):
        self.client_id = client_id
        self.therapist_id = therapist_id
        self.title = title
        self.description = description
        self.category = category
        self.target_date = target_date
        self.status = GoalStatus.ACTIVE
        self.progress = 0
        self.milestones = []
        self.created_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def save(self):
        result = goals_collection().insert_one(self.__dict__)
        return result.inserted_id

    @staticmethod
    def find_by_client(client_id, status=None):
        if isinstance(client_id, str):
            client_id = ObjectId(client_id)
        query = {"client_id": client_id}
        if status:
            query["status"] = status
        return list(goals_collection().find(query).sort("created_at", -1))

    @staticmethod
    def count_for_client(client_id):
        return goals_collection().count_documents({"client_id": client_id})
