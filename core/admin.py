"""
Django Admin configuration for CORE app.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Custom admin for User model with email-based auth."""

    list_display = (
        'email',
        'full_name',
        'role',
        'license_category',
        'license_number',
        'tax_id',
        'is_active',
        'date_joined'
    )
    list_filter = ('role', 'license_category', 'is_active', 'is_staff')
    search_fields = ('email', 'full_name', 'tax_id', 'license_number')
    ordering = ('-date_joined',)

    fieldsets = (
        (None, {
            'fields': ('email', 'password')
        }),
        ('Profile', {
            'fields': ('full_name', 'role')
        }),
        ('Courier legal & license', {
            'fields': ('tax_id', 'birth_date', 'license_number', 'license_category'),
            'description': 'Only categories A and AB may rent a vehicle'
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'role', 'password1', 'password2'),
        }),
    )

    readonly_fields = ('date_joined',)
