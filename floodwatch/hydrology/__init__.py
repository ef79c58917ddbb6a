"""
Hydrology package — river gauges and the rainfall → level model.

Modules:
    stations     — static station and zone catalog
    water_level  — rainfall-driven water level estimator
"""
