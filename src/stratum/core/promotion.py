"""
Primitive type promotion rules.

A promotion is a widening that is lossless, so data written with the narrower type can be
read as the wider one. The relation is an explicit table: it is neither symmetric nor
closed under transitivity beyond the pairs listed here.

Allowed
- Identity (any type to itself).
- int -> long
- float -> double
- decimal(P1, S) -> decimal(P2, S) when P2 >= P1 (scale never changes).

Everything else is disallowed, including fixed length changes, string <-> binary, and
timestamp <-> timestamptz.
"""

from __future__ import annotations

from typing import Final

from .types import PrimitiveType, TypeId

__all__ = ["is_promotion_allowed"]

_WIDENINGS: Final[dict[TypeId, TypeId]] = {
    TypeId.INT: TypeId.LONG,
    TypeId.FLOAT: TypeId.DOUBLE,
}


def is_promotion_allowed(from_type: PrimitiveType, to_type: PrimitiveType) -> bool:
    """
    Return True if values of ``from_type`` may be read as ``to_type`` without loss.

    Examples:
        >>> from stratum.core.types import INT, LONG, decimal
        >>> is_promotion_allowed(INT, LONG), is_promotion_allowed(LONG, INT)
        (True, False)
        >>> is_promotion_allowed(decimal(9, 2), decimal(11, 2))
        True
        >>> is_promotion_allowed(decimal(9, 2), decimal(9, 3))
        False
    """
    if from_type == to_type:
        return True

    if from_type.type_id is TypeId.DECIMAL:
        if to_type.type_id is not TypeId.DECIMAL:
            return False
        assert from_type.precision is not None and to_type.precision is not None
        return from_type.scale == to_type.scale and to_type.precision >= from_type.precision

    return _WIDENINGS.get(from_type.type_id) is to_type.type_id
