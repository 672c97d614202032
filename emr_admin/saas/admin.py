from django.contrib import admin
from .models import Package, Subscription, Payment, Invoice


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['name', 'price', 'billing_cycle', 'is_active', 'show_on_website']
    list_filter = ['billing_cycle', 'is_active', 'show_on_website']
    search_fields = ['name']


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ['organization', 'package', 'status', 'payment_status', 'expires_at']
    list_filter = ['status', 'payment_status']
    search_fields = ['organization__name', 'organization__subdomain']
    readonly_fields = ['metadata', 'created_at', 'updated_at']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'organization', 'amount', 'currency', 'payment_method', 'payment_status', 'due_date']
    list_filter = ['payment_status', 'payment_method', 'currency']
    search_fields = ['invoice_number', 'organization__name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'organization', 'amount', 'status', 'issue_date', 'due_date']
    list_filter = ['status']
    search_fields = ['invoice_number', 'organization__name']
