"""
jyt_admin.codegen

CRUD module generator: parses a declarative models file and renders workflow and router
modules for one model.
"""

from jyt_admin.codegen.generator import GeneratedFile, generate

__all__ = ["GeneratedFile", "generate"]
