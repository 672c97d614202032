from django.contrib import admin
from .models import ManualSection


@admin.register(ManualSection)
class ManualSectionAdmin(admin.ModelAdmin):
    list_display = ['title', 'tab', 'order', 'is_published', 'updated_at']
    list_filter = ['tab', 'is_published']
    search_fields = ['title', 'slug', 'body']
    prepopulated_fields = {'slug': ('title',)}
