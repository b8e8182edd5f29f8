import os

from django.core.wsgi import get_wsgi_application

# Production deployments point this at their own settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hotel_ledger.settings')

application = get_wsgi_application()
