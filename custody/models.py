"""
Database models for the custody backend.

Every inventory row and every administrator belongs to exactly one
:class:`Hospital`, which is the tenant boundary of the system.  Table
names follow the portal's existing schema so that the models can be
pointed at a database that predates this codebase.
"""
from __future__ import annotations

from django.db import models


class ComponentKind(models.TextChoices):
    REDBLOOD = 'RedBlood', 'Red blood cells'
    PLASMA = 'Plasma', 'Plasma'
    PLATELETS = 'Platelets', 'Platelets'


BLOOD_TYPE_CHOICES = [
    ('A', 'A'),
    ('B', 'B'),
    ('AB', 'AB'),
    ('O', 'O'),
]

RH_CHOICES = [
    ('+', 'Positive'),
    ('-', 'Negative'),
]


class Hospital(models.Model):
    """A hospital taking part in the shared portal."""
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=255)
    location = models.CharField(max_length=255, blank=True)
    contact_phone = models.CharField(max_length=32, blank=True)

    class Meta:
        db_table = 'hospital'

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class AdminAccount(models.Model):
    """An operator account bound to one hospital.

    ``password`` holds either a legacy plain-text value or a salted hash.
    Accounts are migrated from the former to the latter in place, so the
    same row (and id) survives the migration.
    """
    username = models.CharField(max_length=150, unique=True)
    password = models.CharField(max_length=255)
    hospital = models.ForeignKey(Hospital, on_delete=models.PROTECT, related_name='admins')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'admins'

    def __str__(self) -> str:
        return f"{self.username} @ {self.hospital_id}"


class AdminSession(models.Model):
    """Server-side record behind an opaque session token."""
    token = models.CharField(max_length=128, primary_key=True)
    admin = models.ForeignKey(AdminAccount, on_delete=models.CASCADE, related_name='sessions')
    # purge scans on this column
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'admin_sessions'

    def __str__(self) -> str:
        return f"session({self.admin_id}) until {self.expires_at:%F %T}"


class InventoryEntry(models.Model):
    """Fields shared by the three component inventories.

    ``active`` is the only thing separating live stock from soft-deleted
    stock; rows are never physically removed by the portal.
    """
    bag_id = models.AutoField(primary_key=True)
    hospital = models.ForeignKey(Hospital, on_delete=models.PROTECT, related_name='%(class)s_set')
    donor_name = models.CharField(max_length=255)
    blood_type = models.CharField(max_length=2, choices=BLOOD_TYPE_CHOICES)
    amount = models.PositiveIntegerField(help_text="Volume in ml")
    expiration_date = models.DateField(db_index=True)
    active = models.BooleanField(default=True, db_index=True)

    kind: ComponentKind
    has_rh = True

    class Meta:
        abstract = True
        indexes = [
            models.Index(fields=['hospital', 'active', 'expiration_date'], name='%(class)s_hosp_act_exp'),
        ]

    def __str__(self) -> str:
        return f"{self.kind} bag {self.bag_id} ({self.blood_type}{getattr(self, 'rh', '')})"


class RedBloodEntry(InventoryEntry):
    rh = models.CharField(max_length=1, choices=RH_CHOICES)

    kind = ComponentKind.REDBLOOD

    class Meta(InventoryEntry.Meta):
        db_table = 'redblood_inventory'


class PlasmaEntry(InventoryEntry):
    """Plasma is typed by ABO group only; it carries no Rh factor."""
    kind = ComponentKind.PLASMA
    has_rh = False

    class Meta(InventoryEntry.Meta):
        db_table = 'plasma_inventory'


class PlateletEntry(InventoryEntry):
    rh = models.CharField(max_length=1, choices=RH_CHOICES)

    kind = ComponentKind.PLATELETS

    class Meta(InventoryEntry.Meta):
        db_table = 'platelets_inventory'


class SurplusTransfer(models.Model):
    """Append-only ledger of declared surplus transfers.

    A row records that ``from_hospital`` sent stock to ``to_hospital``; it
    does not move any inventory rows itself.
    """
    from_hospital = models.ForeignKey(Hospital, on_delete=models.PROTECT, related_name='transfers_out')
    to_hospital = models.ForeignKey(Hospital, on_delete=models.PROTECT, related_name='transfers_in')
    component = models.CharField(max_length=16, choices=ComponentKind.choices)
    blood_type = models.CharField(max_length=2, choices=BLOOD_TYPE_CHOICES)
    rh = models.CharField(max_length=1, blank=True, default='')
    amount = models.PositiveIntegerField()
    units = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'surplus_transfers'
        indexes = [
            models.Index(fields=['from_hospital', 'created_at']),
            models.Index(fields=['to_hospital', 'created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.component} {self.blood_type}{self.rh} {self.from_hospital_id}->{self.to_hospital_id}"
