"""
Cross-hospital views of the inventory for operators.

Nothing in this module takes a session or calls the authorization guard.
It is reachable from the ``inventory_report`` management command only and
must never be wired to an HTTP route.
"""
from __future__ import annotations

from collections import defaultdict

from custody.records import EntryRecord, StockLine
from custody.services.inventory import EntryFilters, collect_entries, stock_levels


def all_hospital_entries(filters: EntryFilters | None = None) -> dict[int, list[EntryRecord]]:
    """Every hospital's entries matching ``filters``, keyed by hospital id."""
    grouped: dict[int, list[EntryRecord]] = defaultdict(list)
    for entry in collect_entries(None, filters or EntryFilters()):
        grouped[entry.hospital_id].append(entry)
    return dict(sorted(grouped.items()))


def all_hospital_stock() -> dict[int, list[StockLine]]:
    grouped: dict[int, list[StockLine]] = defaultdict(list)
    for line in stock_levels():
        grouped[line.hospital_id].append(line)
    return dict(sorted(grouped.items()))
