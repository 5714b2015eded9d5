"""
core/permissions.py -- Capability bitmask carried inside issued tokens.

Each primitive bit is independently grantable; composite roles are the
bitwise OR of primitives. Bit values start at 1 << 1 and must never be
renumbered: they are persisted inside tokens that may outlive a deploy.
"""

from enum import IntFlag


class Permissions(IntFlag):
    NO_PERMISSIONS = 0

    CREATE_PREFERENCE = 1 << 1
    UPDATE_PREFERENCE = 1 << 2
    DELETE_PREFERENCE = 1 << 3

    CREATE_BLOQ = 1 << 4
    UPDATE_BLOQ = 1 << 5
    DELETE_BLOQ = 1 << 6

    PREFERENCE_MANAGER = CREATE_PREFERENCE | UPDATE_PREFERENCE | DELETE_PREFERENCE
    BLOQ_MANAGER = CREATE_BLOQ | UPDATE_BLOQ | DELETE_BLOQ


def has_permissions(granted: int, required: int) -> bool:
    """Return True if every bit in required is set in granted.

    A holder of NO_PERMISSIONS passes no check, including a check that
    requires nothing.
    """
    if granted == Permissions.NO_PERMISSIONS:
        return False
    return (int(granted) & int(required)) == int(required)
