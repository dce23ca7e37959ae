"""
auth/permissions.py -- Permission bit flags and their prerequisites.

Permissions are an unsigned bitmask where each bit grants one capability
independently. A few bits only make sense together with another one
(changing total stock needs querying it; managing users or granting
permissions needs querying users). Those prerequisites are enforced when a
bitmask is granted -- see validate().
"""

from __future__ import annotations

from enum import IntFlag

from auth.errors import InvalidPermissionsError


class Permission(IntFlag):
    MANAGE_BOOKS = 1 << 0  # add, edit and delete books
    QUERY_TOTAL_STOCK = 1 << 1  # total stored book count
    CHANGE_TOTAL_STOCK = 1 << 2  # register updates to the total count
    QUERY_USERS = 1 << 3  # other users' records, including permissions
    MANAGE_USERS = 1 << 4  # add, edit and delete other users
    GRANT_PERMISSIONS = 1 << 5
    LOAN_BOOKS = 1 << 6  # book takeouts and returns
    QUERY_AVAILABLE_STOCK = 1 << 7  # copies not lent out
    QUERY_RESERVATIONS = 1 << 8


ALL_PERMISSIONS: int = sum(perm.value for perm in Permission)

PREREQUISITES: dict[Permission, Permission] = {
    Permission.CHANGE_TOTAL_STOCK: Permission.QUERY_TOTAL_STOCK,
    Permission.MANAGE_USERS: Permission.QUERY_USERS,
    Permission.GRANT_PERMISSIONS: Permission.QUERY_USERS,
}


def has(bits: int, perm: Permission) -> bool:
    """Return True if every bit of `perm` is set in `bits`."""
    return (bits & perm) == perm


def validate(bits: int) -> int:
    """Check a bitmask before it is stored and return it unchanged.

    Raises InvalidPermissionsError for negative values, bits outside the
    known set, or a bit whose prerequisite is missing.
    """
    if bits < 0:
        raise InvalidPermissionsError("Permission bitmask must be non-negative.")
    unknown = bits & ~ALL_PERMISSIONS
    if unknown:
        raise InvalidPermissionsError(f"Unknown permission bits: {unknown:#x}.")
    for perm, required in PREREQUISITES.items():
        if has(bits, perm) and not has(bits, required):
            raise InvalidPermissionsError(f"{perm.name} requires {required.name}.")
    return bits


def names(bits: int) -> list[str]:
    """Return the names of the bits set in `bits`, lowest bit first."""
    return [perm.name for perm in Permission if has(bits, perm)]
