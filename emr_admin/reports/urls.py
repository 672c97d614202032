from django.urls import path
from . import views

urlpatterns = [
    path('inventory-summary/', views.inventory_summary, name='inventory-summary'),
]
