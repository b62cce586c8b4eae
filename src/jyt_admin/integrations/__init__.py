"""
jyt_admin.integrations

Outbound clients for third-party platforms (Meta Graph API, Etsy OAuth).
"""
