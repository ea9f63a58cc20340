# ========================
# src/tripstats/__init__.py
# ========================

"""
Bike-share trip analysis pipeline.
"""

__version__ = "1.0.0"
