"""
FLEET-DISPATCH Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework.decorators import api_view
from rest_framework.response import Response


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "FLEET-DISPATCH Control Tower"
admin.site.site_title = "FLEET-DISPATCH Admin"
admin.site.index_title = "Rentals & Dispatch"


@api_view(['GET'])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'FLEET-DISPATCH API',
        'version': '1.0.0',
        'endpoints': {
            'vehicles': '/api/vehicles/',
            'rentals': {
                'list': '/api/rentals/',
                'rent': '/api/rentals/rent/<plan>/',
                'return': '/api/rentals/<rental_id>/return/',
            },
            'jobs': {
                'create': '/api/jobs/',
                'take': '/api/jobs/<job_id>/take/',
                'deliver': '/api/jobs/<job_id>/deliver/',
            },
            'notifications': '/api/notifications/',
            'schema': '/api/schema/',
        }
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API Root
    path('api/', api_root, name='api-root'),

    # App URLs
    path('api/', include('fleet.urls')),
    path('api/', include('logistics.urls')),

    # API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
