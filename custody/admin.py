"""
Django admin registrations for the custody models.

Operators with Django staff accounts can inspect hospitals, inventory and
the transfer ledger at ``/admin/``.  Portal admins (``AdminAccount``) are
a separate population from Django staff users.  The ledger is read-only
here because it is append-only everywhere.
"""

from django.contrib import admin

from .models import (
    AdminAccount,
    AdminSession,
    Hospital,
    PlasmaEntry,
    PlateletEntry,
    RedBloodEntry,
    SurplusTransfer,
)


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'location', 'contact_phone')
    search_fields = ('id', 'name')


@admin.register(AdminAccount)
class AdminAccountAdmin(admin.ModelAdmin):
    list_display = ('username', 'hospital', 'created_at')
    list_filter = ('hospital',)
    search_fields = ('username',)
    exclude = ('password',)


@admin.register(AdminSession)
class AdminSessionAdmin(admin.ModelAdmin):
    list_display = ('admin', 'created_at', 'expires_at')
    list_filter = ('admin__hospital',)
    exclude = ('token',)


class InventoryEntryAdmin(admin.ModelAdmin):
    list_display = ('bag_id', 'hospital', 'donor_name', 'blood_type', 'amount', 'expiration_date', 'active')
    list_filter = ('hospital', 'blood_type', 'active')
    search_fields = ('bag_id', 'donor_name')
    date_hierarchy = 'expiration_date'


@admin.register(RedBloodEntry)
class RedBloodEntryAdmin(InventoryEntryAdmin):
    list_display = InventoryEntryAdmin.list_display + ('rh',)


@admin.register(PlasmaEntry)
class PlasmaEntryAdmin(InventoryEntryAdmin):
    pass


@admin.register(PlateletEntry)
class PlateletEntryAdmin(InventoryEntryAdmin):
    list_display = InventoryEntryAdmin.list_display + ('rh',)


@admin.register(SurplusTransfer)
class SurplusTransferAdmin(admin.ModelAdmin):
    list_display = ('id', 'from_hospital', 'to_hospital', 'component', 'blood_type', 'rh', 'amount', 'units',
                    'created_at')
    list_filter = ('component', 'blood_type')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
