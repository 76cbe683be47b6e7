"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin
from .models import Job, Notification


class NotificationInline(admin.TabularInline):
    model = Notification
    extra = 0
    readonly_fields = ('courier', 'notified_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    """Status changes go through the job services, never the admin form."""

    list_display = ('id', 'ride_price', 'status', 'courier', 'created_at', 'accepted_at', 'delivered_at')
    list_filter = ('status',)
    search_fields = ('courier__email',)
    readonly_fields = ('status', 'courier', 'created_at', 'accepted_at', 'delivered_at')
    inlines = [NotificationInline]


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('job', 'courier', 'notified_at')
    list_filter = ('notified_at',)
    search_fields = ('courier__email',)
    readonly_fields = ('job', 'courier', 'notified_at')

    def has_add_permission(self, request):
        return False
