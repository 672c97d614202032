from rest_framework import serializers
from .models import ManualSection


class ManualSectionSerializer(serializers.ModelSerializer):
    tab_display = serializers.CharField(source='get_tab_display', read_only=True)

    class Meta:
        model = ManualSection
        fields = ['id', 'slug', 'tab', 'tab_display', 'title', 'body', 'order', 'is_published',
                  'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
