"""ASGI entry point for the blog API."""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'blogapi.settings')

application = get_asgi_application()
