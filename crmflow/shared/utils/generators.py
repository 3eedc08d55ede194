"""Identifier generation."""

from cuid2 import cuid_wrapper

_next_cuid = cuid_wrapper()


def generate_cuid() -> str:
    """New CUID2: ORM primary keys and trigger instance ids the caller did not supply."""
    return str(_next_cuid())
