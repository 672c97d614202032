from django.urls import path
from .views import section_list_create, section_detail

urlpatterns = [
    path('sections/', section_list_create, name='manual-section-list-create'),
    path('sections/<slug:slug>/', section_detail, name='manual-section-detail'),
]
