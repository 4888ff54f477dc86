"""
Session-aware crawler for a legacy course portal.
"""

__version__ = "0.1.0"
