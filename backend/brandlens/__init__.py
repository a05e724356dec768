"""
brandlens - AI answer visibility and citation trust tracking
"""

__version__ = "1.0.0"
