"""
Authentication and authorization.

Tokens are issued elsewhere; this package only verifies them and resolves
the calling agent.
"""
