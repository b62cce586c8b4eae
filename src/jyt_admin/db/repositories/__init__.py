"""
jyt_admin.db.repositories

Repository layer (thin async data-access classes over `AsyncSession`).
"""
