"""
URL configuration for the course checkout project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/purchase/', include('purchases.urls')),
]
