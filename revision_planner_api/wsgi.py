"""
WSGI config for revision_planner_api project.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import os

from django.core.wsgi import get_wsgi_application


os.environ.setdefault("DJANGO_SETTINGS_MODULE", "revision_planner_api.settings.production")

application = get_wsgi_application()
