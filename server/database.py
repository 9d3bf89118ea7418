import os
import logging

from pymongo import MongoClient, ASCENDING, DESCENDING

logger = logging.getLogger(__name__)

_client = None
_db = None


def get_db_client():
    """Get MongoDB client with connection retry logic"""
    try:
        mongo_uri = os.environ.get('MONGO_URI', 'mongodb://localhost:27017/')

        client = MongoClient(
            mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=10000,
            maxPoolSize=50
        )

        # Test connection
        client.admin.command('ping')
        logger.info("Connected to MongoDB successfully")
        return client
    except Exception as e:
        logger.error(f"MongoDB connection error: {str(e)}")
        raise


def get_db():
    """Return the active database, connecting on first use"""
    global _client, _db
    if _db is None:
        _client = get_db_client()
        _db = _client[os.environ.get('MONGO_DB', 'teletherapy_db')]
        ensure_indexes(_db)
    return _db


def set_db(db):
    """Install a database handle (a mongomock database in tests)"""
    global _db
    _db = db
    return _db


def ensure_indexes(db):
    """Create the indexes the coordinator relies on for its invariants"""
    # At most one active subscription per client: only active subscriptions
    # carry active_client_id, so the sparse unique index enforces it.
    db.subscriptions.create_index(
        [("active_client_id", ASCENDING)], unique=True, sparse=True
    )
    db.subscriptions.create_index([("client_id", ASCENDING), ("created_at", DESCENDING)])

    # One payment record per (session, payment kind)
    db.payments.create_index(
        [("session_id", ASCENDING), ("metadata.type", ASCENDING)], unique=True
    )

    db.therapy_sessions.create_index([("therapist_id", ASCENDING), ("scheduled_date", DESCENDING)])
    db.therapy_sessions.create_index([("client_id", ASCENDING), ("status", ASCENDING), ("scheduled_date", ASCENDING)])
    db.therapy_sessions.create_index([("status", ASCENDING), ("scheduled_start", ASCENDING)])
    db.therapists.create_index([("user_id", ASCENDING)], unique=True)
    db.clients.create_index([("user_id", ASCENDING)], unique=True)
    logger.info("MongoDB indexes ensured")
