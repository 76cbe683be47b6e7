"""
FLEET App - URL Configuration

Vehicle registry and rental routes.
"""

from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

app_name = 'fleet'

router = SimpleRouter()
router.register(r'vehicles', views.VehicleViewSet, basename='vehicle')

urlpatterns = [
    path('', include(router.urls)),

    # Rentals
    path('rentals/', views.RentalListView.as_view(), name='rental-list'),
    path('rentals/rent/<int:plan>/', views.RentVehicleView.as_view(), name='rental-rent'),
    path('rentals/<int:rental_id>/return/', views.ReturnRentalView.as_view(), name='rental-return'),
]
