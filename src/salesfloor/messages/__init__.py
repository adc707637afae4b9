"""
Internal messages between users.
"""
