import math

# Signed 64-bit range of SQL INTEGER columns.
MAX_STORED_INT = 2**63 - 1


def is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_stored_int(value) -> bool:
    return is_int(value) and -MAX_STORED_INT - 1 <= value <= MAX_STORED_INT


def is_finite_number(value) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


__all__ = ["MAX_STORED_INT", "is_finite_number", "is_int", "is_stored_int"]
