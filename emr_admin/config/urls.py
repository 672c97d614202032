"""
URL configuration for the EMR admin backend.

Tenant-facing inventory and purchasing endpoints live under api/inventory/,
the SaaS owner console under api/saas/ and the public package list under
api/website/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "EMR Admin Panel"
admin.site.site_title = "EMR Admin Portal"
admin.site.index_title = "Welcome to the EMR Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('emr_admin.core.urls')),
    path('api/inventory/', include('emr_admin.inventory.urls')),
    path('api/inventory/', include('emr_admin.purchasing.urls')),
    path('api/purchasing/', include('emr_admin.purchasing.urls')),
    path('api/saas/', include('emr_admin.saas.urls')),
    path('api/website/', include('emr_admin.saas.website_urls')),
    path('api/reports/', include('emr_admin.reports.urls')),
    path('api/manual/', include('emr_admin.manual.urls')),
]
