import jwt
import logging
from datetime import datetime, timedelta
from django.conf import settings

from apps.users.models import User

logger = logging.getLogger(__name__)


def generate_jwt_token(user, lifetime=timedelta(days=3)):
    """Generate a JWT token for the user"""
    expiration = datetime.utcnow() + lifetime

    payload = {
        'user_id': str(user.get('_id')),
        'role': user.get('role', 'client'),
        'exp': expiration,
    }

    return jwt.encode(
        payload,
        settings.SECRET_KEY,
        algorithm='HS256'
    )


def get_user_from_request(request):
    """Get user from request using JWT token"""
    auth_header = request.headers.get('Authorization', '')

    if not auth_header.startswith('Bearer '):
        return None

    token = auth_header.split(' ')[1]

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=['HS256']
        )
    except jwt.InvalidTokenError as e:
        logger.info(f"Authentication error: {str(e)}")
        return None

    user_id = payload.get('user_id')
    if not user_id:
        return None

    return User.find_by_id(user_id)
