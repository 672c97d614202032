from django.urls import path
from .views import public_packages

urlpatterns = [
    path('packages/', public_packages, name='website-packages'),
]
