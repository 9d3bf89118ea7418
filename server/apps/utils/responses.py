import json
import logging
from functools import wraps

from django.http import JsonResponse

from apps.users.models import UserRole
from apps.utils.auth import get_user_from_request
from apps.utils.db_helper import MongoJSONEncoder
from apps.utils.exceptions import CoordinatorError

logger = logging.getLogger(__name__)


def api_response(data=None, message=None, status=200, **extra):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return JsonResponse(body, status=status, encoder=MongoJSONEncoder)


def parse_body(request):
    if not request.body:
        return {}
    return json.loads(request.body)


def service_view(roles=None):
    """
    Authenticate the caller, then run the view and translate service errors.

    The wrapped view receives the authenticated user document as `actor`.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            actor = get_user_from_request(request)
            if not actor:
                return JsonResponse({
                    "success": False,
                    "message": "Authentication required"
                }, status=401)

            if roles and actor.get("role") not in roles:
                return JsonResponse({
                    "success": False,
                    "message": "You are not allowed to perform this action"
                }, status=403)

            try:
                return view(request, actor, *args, **kwargs)
            except CoordinatorError as e:
                return JsonResponse(e.to_dict(), status=e.status_code)
            except json.JSONDecodeError:
                return JsonResponse({
                    "success": False,
                    "message": "Request body must be valid JSON"
                }, status=400)
            except Exception as e:
                logger.exception(f"Unhandled error in {view.__name__}")
                return JsonResponse({
                    "success": False,
                    "message": str(e)
                }, status=500)
        return wrapper
    return decorator


admin_only = service_view(roles=[UserRole.ADMIN])
