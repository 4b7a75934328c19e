"""
WSGI config for the dairy back-office project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dairy.config.settings')

application = get_wsgi_application()
