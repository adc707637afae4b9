"""
Lead lists: named prospect lists with per-user sharing.
"""
