"""
WSGI config for pharma_mes project.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'pharma_mes.settings')
application = get_wsgi_application()
