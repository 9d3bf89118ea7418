from bson import ObjectId
from bson.errors import InvalidId
from datetime import datetime, date
import json

from apps.utils.exceptions import InvalidInput


def to_object_id(value, field="id"):
    """Coerce a string id to ObjectId, rejecting malformed ids"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidInput(f"Invalid {field} format")


class MongoJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles MongoDB types"""
    def default(self, obj):
        if isinstance(obj, ObjectId):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)
