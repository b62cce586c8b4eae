"""
jyt_admin

JYT admin back-office and partner portal: FastAPI routes over saga-style workflows.

Entrypoints:
- `python -m jyt_admin.api` serves the API.
- `python -m jyt_admin.codegen` scaffolds CRUD workflows and routers for a model.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
