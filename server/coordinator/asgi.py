import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'coordinator.settings')

# Only HTTP is served; realtime transport lives outside this service
application = get_asgi_application()
