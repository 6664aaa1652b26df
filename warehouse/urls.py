from django.urls import path

from . import views

app_name = 'warehouse'

urlpatterns = [
    path('api/csrf-token/', views.csrf_token_view, name='csrf_token'),
    path('api/sku-info/', views.sku_info_api, name='sku_info_api'),
    path('api/db-status/', views.db_status, name='db_status'),
    path('api/inventory/bulk-delete/', views.inventory_bulk_delete, name='inventory_bulk_delete_api'),
    path('inventory/bulk-delete/', views.inventory_bulk_delete, name='inventory_bulk_delete'),
    path('sku/<str:item_code>/edit/', views.sku_edit, name='sku_edit'),
]
