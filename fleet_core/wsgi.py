"""
WSGI config for FLEET-DISPATCH.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'fleet_core.settings')

application = get_wsgi_application()
