"""
Manufacturing Analytics

Normalizes raw production spreadsheets into a star schema and exposes
derived production, quality and utilization metrics.
"""

__version__ = "1.0.0"
