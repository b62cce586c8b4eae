"""
jyt_admin.db

Persistence package: declarative base, models, sessions and repositories.
"""
