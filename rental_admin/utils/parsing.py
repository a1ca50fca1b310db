# rental_admin/utils/parsing.py
import math
import re


def slugify(text):
    text = (text or "").strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")


def parse_bool(v, default=False):
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_opt_int(v):
    if v is None:
        return None
    if isinstance(v, str) and v.strip().lower() in {"", "null"}:
        return None
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_opt_float(v):
    if v is None:
        return None
    if isinstance(v, str) and v.strip().lower() in {"", "null"}:
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_id_list(values):
    """Split raw ids into (valid positive ints, rejected raw values), keeping order."""
    valid, invalid = [], []
    for raw in values or []:
        if isinstance(raw, bool):
            invalid.append(raw)
            continue
        try:
            n = int(raw)
        except (TypeError, ValueError, OverflowError):
            invalid.append(raw)
            continue
        if isinstance(raw, float) and raw != n:
            invalid.append(raw)
        elif n > 0:
            valid.append(n)
        else:
            invalid.append(raw)
    return valid, invalid
