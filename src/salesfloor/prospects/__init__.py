"""
Prospects: CRUD, status tracking and lead assignment.
"""
