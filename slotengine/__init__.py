"""
slotengine - appointment slot computation for multi-tenant booking pages.
"""

__version__ = "0.1.0"
