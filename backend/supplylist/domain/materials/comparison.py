"""Side-by-side comparison of two list versions, paired by normalized item name."""
from __future__ import annotations
from typing import Any, Dict, List

from supplylist.domain.materials.matching import normalize_name
from supplylist.domain.materials.models import ListVersion, MaterialItem

COMPARED_FIELDS = ("quantity", "price", "brand", "isbn", "subject", "category")


def _differences(base: MaterialItem, target: MaterialItem) -> List[str]:
    return [name for name in COMPARED_FIELDS if getattr(base, name) != getattr(target, name)]


def compare_versions(base: ListVersion, target: ListVersion) -> Dict[str, Any]:
    """
    Pairs items of ``base`` and ``target`` whose names normalize equally.
    Duplicate names pair up in order of appearance. Unpaired target items are
    ``added``; unpaired base items are ``removed``.
    """
    pending: Dict[str, List[MaterialItem]] = {}
    for item in base.items:
        pending.setdefault(normalize_name(item.name), []).append(item)

    matches: List[Dict[str, Any]] = []
    added: List[str] = []
    for item in target.items:
        bucket = pending.get(normalize_name(item.name))
        if bucket:
            previous = bucket.pop(0)
            diffs = _differences(previous, item)
            matches.append(
                {
                    "base_id": previous.id,
                    "target_id": item.id,
                    "name": item.name,
                    "identical": not diffs,
                    "differences": diffs,
                }
            )
        else:
            added.append(item.id)

    leftover = {id(item) for bucket in pending.values() for item in bucket}
    removed = [item.id for item in base.items if id(item) in leftover]

    total = max(len(base.items), len(target.items))
    return {
        "base_version": base.version_timestamp,
        "target_version": target.version_timestamp,
        "matches": matches,
        "added": added,
        "removed": removed,
        "stats": {
            "base_total": len(base.items),
            "target_total": len(target.items),
            "matched": len(matches),
            "identical": sum(1 for m in matches if m["identical"]),
            "with_differences": sum(1 for m in matches if not m["identical"]),
            "added": len(added),
            "removed": len(removed),
            "match_percentage": round(100.0 * len(matches) / total, 1) if total else 100.0,
        },
    }
