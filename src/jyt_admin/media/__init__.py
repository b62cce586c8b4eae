"""
jyt_admin.media

Media library helpers shared by the API and the upload client.
"""
