"""
URL configuration for wms_admin project.

The admin site provides the staff login; every warehouse page and API lives in
the ``warehouse`` app.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('warehouse.urls')),
]
