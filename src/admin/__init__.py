"""
Admin System Module

Read-only views for the admin panel: dashboard counters, recent scans,
chart data, booking, scan and message log listings, provider configuration
status, plus operator access to the in-memory fallback store. Every read
degrades to fallback data with ``mock: true`` while the database is
unreachable.
"""
