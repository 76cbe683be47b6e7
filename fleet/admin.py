"""
Django Admin configuration for FLEET app.
"""

from django.contrib import admin
from .models import Vehicle, Rental


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ('plate', 'model', 'year', 'created_at')
    search_fields = ('plate', 'model')
    ordering = ('id',)


@admin.register(Rental)
class RentalAdmin(admin.ModelAdmin):
    """Rentals are written by the rental service; the admin only reads them."""

    list_display = (
        'id', 'vehicle', 'courier', 'plan',
        'start_date', 'predicted_end_date', 'end_date', 'total_cost'
    )
    list_filter = ('plan',)
    search_fields = ('vehicle__plate', 'courier__email')
    raw_id_fields = ('vehicle', 'courier')
    date_hierarchy = 'start_date'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
