"""
WSGI config for the studiodesk project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'studiodesk.config.settings')

application = get_wsgi_application()
