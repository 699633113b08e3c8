"""
WSGI config for the fuelindex project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "fuelindex.settings")

application = get_wsgi_application()
