from .dates import br_timestamp, format_br_date, is_overdue, parse_br_date
from .money import brl_to_decimal, format_brl, looks_like_brl, parse_brl

__all__ = [
    "br_timestamp",
    "format_br_date",
    "is_overdue",
    "parse_br_date",
    "brl_to_decimal",
    "format_brl",
    "looks_like_brl",
    "parse_brl",
]
