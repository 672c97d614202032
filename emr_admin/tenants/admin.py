from django.contrib import admin
from .models import Organization


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name', 'subdomain', 'region', 'subscription_status', 'payment_status', 'created_at']
    list_filter = ['region', 'subscription_status', 'payment_status']
    search_fields = ['name', 'subdomain', 'email', 'brand_name']
    ordering = ['name']
