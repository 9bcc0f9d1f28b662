"""
ASGI config for the blood-bank project.

Exposes the plain Django HTTP application; the custody API has no
WebSocket surface.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "bloodbank.settings")

application = get_asgi_application()
