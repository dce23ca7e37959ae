"""
tests/test_permissions.py -- Unit tests for auth/permissions.py.

Covers:
  - bit positions are stable (other services store these integers)
  - has() requires every bit of the flag
  - validate() rejects negative, unknown and prerequisite-less bitmasks
  - names() lists set bits lowest first
"""

from __future__ import annotations

import pytest

from auth.errors import InvalidPermissionsError
from auth.permissions import ALL_PERMISSIONS, PREREQUISITES, Permission, has, names, validate


class TestBits:
    def test_bit_positions(self) -> None:
        assert Permission.MANAGE_BOOKS == 1
        assert Permission.QUERY_TOTAL_STOCK == 2
        assert Permission.CHANGE_TOTAL_STOCK == 4
        assert Permission.QUERY_USERS == 8
        assert Permission.MANAGE_USERS == 16
        assert Permission.GRANT_PERMISSIONS == 32
        assert Permission.LOAN_BOOKS == 64
        assert Permission.QUERY_AVAILABLE_STOCK == 128
        assert Permission.QUERY_RESERVATIONS == 256

    def test_all_permissions(self) -> None:
        assert ALL_PERMISSIONS == 0x1FF

    def test_has(self) -> None:
        bits = int(Permission.QUERY_USERS | Permission.MANAGE_USERS)
        assert has(bits, Permission.MANAGE_USERS)
        assert not has(bits, Permission.MANAGE_BOOKS)
        assert has(bits, Permission.QUERY_USERS | Permission.MANAGE_USERS)
        assert not has(int(Permission.QUERY_USERS), Permission.QUERY_USERS | Permission.MANAGE_USERS)

    def test_names(self) -> None:
        assert names(0) == []
        assert names(int(Permission.LOAN_BOOKS | Permission.MANAGE_BOOKS)) == ["MANAGE_BOOKS", "LOAN_BOOKS"]


class TestValidate:
    @pytest.mark.parametrize("bits", [0, 1, ALL_PERMISSIONS, int(Permission.QUERY_USERS | Permission.GRANT_PERMISSIONS)])
    def test_accepts(self, bits: int) -> None:
        assert validate(bits) == bits

    def test_rejects_negative(self) -> None:
        with pytest.raises(InvalidPermissionsError):
            validate(-1)

    def test_rejects_unknown_bits(self) -> None:
        with pytest.raises(InvalidPermissionsError) as exc_info:
            validate(1 << 9)
        assert "0x200" in exc_info.value.message

    @pytest.mark.parametrize("perm", list(PREREQUISITES))
    def test_rejects_missing_prerequisite(self, perm: Permission) -> None:
        with pytest.raises(InvalidPermissionsError) as exc_info:
            validate(int(perm))
        assert PREREQUISITES[perm].name in exc_info.value.message
        assert validate(int(perm | PREREQUISITES[perm])) == int(perm | PREREQUISITES[perm])
