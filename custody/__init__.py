"""Custody-and-redistribution engine for the blood-bank portal.

This package holds the hospital-scoped inventory models, the session and
authorization services, the resilient store gateway and the surplus
engine, together with the API views that expose them.
"""
