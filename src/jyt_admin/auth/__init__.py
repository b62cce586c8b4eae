"""
jyt_admin.auth

Authentication/authorization package.

Responsibilities:
- JWT helpers and validation.
- FastAPI auth dependencies (Principal, RBAC and partner scoping).
"""
