"""Shared utility functions."""

from crmflow.shared.utils.datetime import ensure_utc, minute_ref, parse_iso_datetime, utc_now
from crmflow.shared.utils.generators import generate_cuid
from crmflow.shared.utils.serialization import to_jsonable

__all__ = [
    "ensure_utc",
    "generate_cuid",
    "minute_ref",
    "parse_iso_datetime",
    "to_jsonable",
    "utc_now",
]
