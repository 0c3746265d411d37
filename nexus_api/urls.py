"""
Root URLconf: Django admin, health check, and the two API apps.
"""
import logging

from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.contrib.auth.models import Group
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.urls import include, path

logger = logging.getLogger(__name__)

# Admins are plain staff users; permission groups are not used
admin.site.unregister(Group)

admin.site.site_header = "NEXUS Election Rooms - Administration"
admin.site.site_title = "NEXUS Admin"
admin.site.index_title = "Election and Review Rooms"

SERVICE_NAME = 'nexus-voting-api'
SERVICE_VERSION = '1.0.0'


def health_check(request):
    """Liveness check. Reports 503 when the database cannot be reached."""
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return JsonResponse({
            'status': 'error',
            'service': SERVICE_NAME,
            'database': 'unavailable',
        }, status=503)

    return JsonResponse({
        'status': 'ok',
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'database': 'ok',
    })


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health_check'),
    path('api/auth/', include('authentication.urls')),
    path('api/', include('voting.urls')),
]

# Uploaded candidate pictures, served by Django in development only
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
