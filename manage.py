#!/usr/bin/env python
"""
Command-line entry point for the blood-bank custody backend.

Besides Django's built-in commands this exposes the custody commands:
``populate_data`` (load the sample hospitals and bags), ``ensure_admin``,
``inventory_report`` and ``purge_sessions``.  Without ``DATABASE_URL`` set,
export ``CUSTODY_LOCAL_SQLITE=1`` to run them against the local SQLite file.
"""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bloodbank.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Django is not importable; install the project with "
            "`pip install -e .` inside an active virtual environment."
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
