import os
import time
import logging

import django
import schedule
from pymongo.errors import PyMongoError

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "coordinator.settings")
django.setup()

from apps.therapy_sessions.tasks import mark_missed_sessions  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def sweep_missed_sessions():
    try:
        mark_missed_sessions()
    except PyMongoError as e:
        # Next run will pick the sessions up again
        logger.error(f"Error marking missed sessions: {str(e)}")


def run_scheduler():
    # Schedule the task to run every 5 minutes
    schedule.every(5).minutes.do(sweep_missed_sessions)

    logger.info("Scheduler started")

    while True:
        schedule.run_pending()
        time.sleep(60)  # Check every minute


if __name__ == "__main__":
    run_scheduler()
