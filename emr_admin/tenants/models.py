from django.db import models


class Organization(models.Model):
    """A tenant (customer) of the EMR platform"""
    REGION_CHOICES = [
        ('UK', 'United Kingdom'),
        ('EU', 'Europe'),
        ('ME', 'Middle East'),
        ('SA', 'South Asia'),
        ('US', 'United States'),
    ]

    SUBSCRIPTION_STATUS_CHOICES = [
        ('trial', 'Trial'),
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
        ('cancelled', 'Cancelled'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('trial', 'Trial'),
        ('paid', 'Paid'),
        ('unpaid', 'Unpaid'),
        ('failed', 'Failed'),
        ('pending', 'Pending'),
    ]

    name = models.CharField(max_length=255)
    subdomain = models.SlugField(max_length=100, unique=True)
    email = models.EmailField(blank=True)
    region = models.CharField(max_length=5, choices=REGION_CHOICES, default='UK')
    brand_name = models.CharField(max_length=255, blank=True)
    settings = models.JSONField(default=dict, blank=True)
    features = models.JSONField(default=dict, blank=True)
    access_level = models.CharField(max_length=50, default='full')
    subscription_status = models.CharField(max_length=20, choices=SUBSCRIPTION_STATUS_CHOICES, default='trial')
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='trial')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'organizations'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def display_name(self):
        return self.brand_name or self.name
