"""
Scheduler package — timed refreshes and connectivity.

Modules:
    events             — connectivity event channel
    refresh_scheduler  — per-zone refresh lifecycle and published state
"""
