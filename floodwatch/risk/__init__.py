"""
Risk package — classification and aggregation.

Modules:
    models      — water level, zone risk and cache records
    classifier  — pure threshold functions
    aggregator  — concurrent fetch, merge and zone risk
"""
