"""
WSGI config for the samiske project.

Served by gunicorn (see gunicorn.conf.py).
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'samiske.settings')

application = get_wsgi_application()
