"""
jyt_admin.api.routers

HTTP routers grouped by back-office area.
"""
