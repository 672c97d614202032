from django.db import models


class ManualSection(models.Model):
    """A section of the in-app user manual"""
    TAB_CHOICES = [
        ('manual', 'User Manual'),
        ('setup', 'Initial Setup'),
        ('roles', 'Roles & Permissions'),
        ('shifts', 'Shifts'),
        ('billing', 'Billing & Fees'),
        ('documents', 'Documents'),
        ('features', 'Features'),
        ('inventory', 'Inventory'),
        ('saas', 'SaaS Administration'),
    ]

    slug = models.SlugField(max_length=120, unique=True)
    tab = models.CharField(max_length=20, choices=TAB_CHOICES, default='manual')
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True, help_text='Markdown text')
    order = models.PositiveIntegerField(default=0)
    is_published = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'manual_sections'
        ordering = ['tab', 'order', 'id']
