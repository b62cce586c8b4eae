"""
jyt_admin.api

HTTP surface: app factory, dependencies and routers.
"""
