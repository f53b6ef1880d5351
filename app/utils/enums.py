"""Enum helpers for string-backed columns (status, role, level)."""
from enum import Enum


def enum_to_str(v):
    """
    Column value for an enum member or a plain string.

    >>> enum_to_str(LeaveStatus.APPROVED_LVL1)
    'approved_lvl1'
    >>> enum_to_str('approved_lvl1')
    'approved_lvl1'
    """
    if v is None:
        return None
    if isinstance(v, Enum):
        return v.value
    return str(v)
