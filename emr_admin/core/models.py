from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model bound to a tenant organization"""
    ROLE_CHOICES = [
        ('admin', 'Admin'),
        ('doctor', 'Doctor'),
        ('nurse', 'Nurse'),
        ('pharmacist', 'Pharmacist'),
        ('receptionist', 'Receptionist'),
        ('staff', 'Staff'),
    ]

    phone = models.CharField(max_length=20, blank=True, null=True)
    organization = models.ForeignKey(
        'tenants.Organization', on_delete=models.CASCADE, null=True, blank=True, related_name='users'
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='staff')
    is_saas_owner = models.BooleanField(default=False, help_text="Owner of the SaaS console (not tied to a tenant)")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def is_org_admin(self):
        return self.role == 'admin' and self.organization_id is not None


class Setting(models.Model):
    """SaaS-wide settings (email sender, billing defaults, ...)"""
    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(default=dict, blank=True)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=50, default='system')
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'saas_settings'
        ordering = ['category', 'key']


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_issue', 'Stock Issued'),
        ('stock_purchase', 'Stock Added (Purchase)'),
        ('po_send', 'Purchase Order Sent'),
        ('po_cancel', 'Purchase Order Cancelled'),
        ('goods_receipt', 'Goods Received'),
        ('status_change', 'Status Change'),
        ('payment_add', 'Payment Added'),
        ('payment_status', 'Payment Status Changed'),
        ('document_share', 'Document Shared'),
        ('reminder_sent', 'Reminder Sent'),
        ('subscription_expire', 'Subscription Expired'),
        ('subscription_suspend', 'Subscription Suspended'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    organization = models.ForeignKey(
        'tenants.Organization', on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs'
    )
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., item name, organization name)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., PO number, invoice number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at']),
            models.Index(fields=['action']),
            models.Index(fields=['model_name']),
            models.Index(fields=['object_reference']),
        ]

    def __str__(self):
        return f"{self.action} {self.model_name}#{self.object_id}"
