from .time import normalize_dt, now_utc, parse_rfc3339

__all__ = [
    "now_utc",
    "parse_rfc3339",
    "normalize_dt",
]
