"""
auth/models.py -- Domain dataclasses for identity and session entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
service do the work; these only own the domain shape.

Layer rule: no imports from api/, storage/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """An identity record.

    id is assigned by the store on save_user() and never reassigned. Until
    then it is the empty string.

    password holds the bcrypt hash once the record has passed through the
    session service. Callers constructing a User for check_user() or
    new_user() put the plaintext here; the service hashes it before it
    reaches a store.

    permissions is a plain int bitmask -- see auth/permissions.py for the
    named bits.
    """

    login: str
    password: str = field(default="", repr=False)
    permissions: int = 0
    id: str = ""


@dataclass
class Token:
    """A session credential pair.

    access is the session handle; refresh rotates it. Both are hex strings
    drawn from the OS CSPRNG. expiration is an aware UTC datetime fixed at
    creation.
    """

    access: str = field(repr=False)
    refresh: str = field(repr=False)
    expiration: datetime

    @property
    def prefix(self) -> str:
        """First 8 characters of the access value -- safe to log."""
        return self.access[:8]
