"""
Print valid stock per combination for one hospital or for all of them.

``--all-hospitals`` is the only cross-hospital listing in the project; it
bypasses tenant scoping and is meant for operators with shell access.
"""
from django.core.management.base import BaseCommand, CommandError

from custody.services import diagnostics
from custody.services.inventory import EntryFilters, collect_entries, stock_levels


class Command(BaseCommand):
    help = "Report valid, active stock for a hospital (or every hospital with --all-hospitals)."

    def add_arguments(self, parser):
        parser.add_argument('--hospital', type=int, help="Hospital id")
        parser.add_argument('--all-hospitals', action='store_true')
        parser.add_argument('--entries', action='store_true', help="List individual bags as well")

    def handle(self, *args, **opts):
        if opts['all_hospitals'] == bool(opts['hospital']):
            raise CommandError("Pass exactly one of --hospital or --all-hospitals.")

        if opts['all_hospitals']:
            stock = diagnostics.all_hospital_stock()
            entries = diagnostics.all_hospital_entries() if opts['entries'] else {}
        else:
            hid = opts['hospital']
            stock = {hid: stock_levels(hid)}
            entries = {hid: collect_entries(hid, EntryFilters())} if opts['entries'] else {}

        for hid in sorted(set(stock) | set(entries)):
            lines = stock.get(hid, [])
            self.stdout.write(self.style.MIGRATE_HEADING(f"Hospital {hid}"))
            for line in lines:
                self.stdout.write(
                    f"  {line.kind.value:<10} {line.blood_type}{line.rh:<2} "
                    f"{line.count:>4} bag(s) {line.total_amount:>7} ml"
                )
            for entry in entries.get(hid, []):
                self.stdout.write(
                    f"    #{entry.bag_id} {entry.kind.value} {entry.blood_type}{entry.rh or ''} "
                    f"{entry.amount} ml exp {entry.expiration_date.isoformat()}"
                )
        if not stock and not entries:
            self.stdout.write("No valid stock.")
