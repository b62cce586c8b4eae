"""
jyt_admin.auth.models

Auth domain models.

Responsibilities:
- Define the authenticated identity type (`Principal`) injected into endpoints.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated caller identity.

    `partner_id` is set for partner-portal users and scopes every partner route.
    """

    subject: str
    roles: frozenset[str]
    partner_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    @property
    def actor(self) -> str:
        return self.subject
