"""
jyt_admin.storage

Object storage backends.
"""
