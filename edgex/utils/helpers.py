import jsonpickle
from datetime import datetime, timezone
from typing import Dict, List, Optional


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data):
    """
    Returns a canonical JSON representation of a dictionary.

    Keys are sorted recursively, so two dictionaries holding the same content
    in a different key order produce the same string.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def deep_compare_dict(data1, data2) -> bool:
    """Compare two (possibly nested) structures for equivalence, ignoring key order."""
    if data1 is None and data2 is None:
        return True
    if data1 is None or data2 is None:
        return False
    if not isinstance(data1, type(data2)) and not isinstance(data2, type(data1)):
        return False
    try:
        return canonicalize_dict(data1) == canonicalize_dict(data2)
    except (TypeError, ValueError):
        return data1 == data2


def upsert_condition(conds, newc):
    """In-memory merge by .type. Only bump lastTransitionTime when status flips."""
    conds = list(conds or [])
    for i, c in enumerate(conds):
        if c.get("type") == newc["type"]:
            ltt = c.get("lastTransitionTime") or now()
            if c.get("status") != newc["status"]:
                ltt = now()
            merged = {**c, **newc, "lastTransitionTime": ltt}
            conds[i] = merged
            break
    else:
        conds.append({**newc, "lastTransitionTime": now()})
    return conds


def find_condition(conds: Optional[List[Dict]], type_: str) -> Optional[Dict]:
    for c in conds or []:
        if c.get("type") == type_:
            return c
    return None
