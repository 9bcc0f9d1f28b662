"""
URL mappings for the custody API.

Paths carry no trailing slash (``APPEND_SLASH = False``).
Fixed inventory paths are listed before the ``<kind>`` patterns so that
``deleted``, ``search`` and ``summary`` never resolve as a component kind.
"""
from django.urls import path

from .views import auth, health, inventory, surplus

urlpatterns = [
    # auth
    path('api/auth/login', auth.login_view, name='auth-login'),
    path('api/auth/logout', auth.logout_view, name='auth-logout'),
    path('api/auth/session', auth.session_view, name='auth-session'),
    path('api/auth/register', auth.register_view, name='auth-register'),

    # inventory
    path('api/inventory', inventory.list_inventory, name='inventory-list'),
    path('api/inventory/deleted', inventory.list_deleted, name='inventory-deleted'),
    path('api/inventory/search', inventory.search_inventory, name='inventory-search'),
    path('api/inventory/summary', inventory.inventory_summary, name='inventory-summary'),
    path('api/inventory/<str:kind>', inventory.create_entry, name='inventory-create'),
    path('api/inventory/<str:kind>/<int:bag_id>', inventory.update_entry, name='inventory-update'),
    path('api/inventory/<str:kind>/<int:bag_id>/soft-delete', inventory.soft_delete_entry,
         name='inventory-soft-delete'),
    path('api/inventory/<str:kind>/<int:bag_id>/restore', inventory.restore_entry, name='inventory-restore'),

    # surplus
    path('api/surplus/hospital', surplus.hospital_surplus, name='surplus-hospital'),
    path('api/surplus/needed', surplus.hospitals_needing, name='surplus-needed'),
    path('api/surplus/alerts', surplus.surplus_alerts, name='surplus-alerts'),
    path('api/surplus/summary', surplus.surplus_summary, name='surplus-summary'),
    path('api/surplus/transfer', surplus.record_transfer, name='surplus-transfer'),
    path('api/surplus/history', surplus.transfer_history, name='surplus-history'),

    path('healthz', health.healthz, name='healthz'),
]
