import logging
from datetime import datetime, timedelta

from django.conf import settings

from apps.therapy_sessions.lifecycle import PENDING_STATUSES, SessionLifecycle
from apps.therapy_sessions.models import TherapySession
from apps.utils.exceptions import Conflict

logger = logging.getLogger(__name__)


def mark_missed_sessions(now=None, lifecycle=None):
    """
    Mark scheduled or confirmed sessions as no-show once their start is more
    than NO_SHOW_GRACE_MINUTES in the past. Run periodically by cron.py.
    """
    now = now or datetime.utcnow()
    lifecycle = lifecycle or SessionLifecycle(clock=lambda: now)
    cutoff = now - timedelta(minutes=settings.NO_SHOW_GRACE_MINUTES)

    marked = 0
    for session in TherapySession.find_overdue(PENDING_STATUSES, cutoff):
        try:
            lifecycle.mark_no_show(session["_id"])
        except Conflict:
            # Started or cancelled since we read it
            logger.info(f"Session {session['_id']} changed state before the no-show sweep")
            continue
        marked += 1

    logger.info(f"Marked {marked} sessions as no-show")
    return marked
