"""
LOGISTICS App - WebSocket Routing Configuration

Maps WebSocket URLs to consumers.
"""

from django.urls import re_path
from . import consumers


websocket_urlpatterns = [
    # Courier app - receive job offers and status changes
    # ws://localhost:8000/ws/courier/
    re_path(
        r'ws/courier/$',
        consumers.CourierConsumer.as_asgi()
    ),
]
