"""
SalesFloor API: call-center backend for prospects, calls and lead lists.
"""

__version__ = "0.1.0"
