"""Current-version resolution: the single rule every operation relies on."""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional, Sequence

from supplylist.domain.materials.models import ListVersion

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Optional[str]) -> datetime:
    """ISO-8601 to aware datetime; blanks and garbage sort first."""
    if not value:
        return _EPOCH
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def effective_timestamp(version: ListVersion) -> datetime:
    return parse_timestamp(version.last_modified or version.version_timestamp)


def select_current_index(versions: Sequence[ListVersion]) -> Optional[int]:
    """Index of the version with the greatest ``last_modified ?? version_timestamp``.

    Ties go to the later array position.
    """
    best_index: Optional[int] = None
    best_ts = None
    for index, version in enumerate(versions):
        ts = effective_timestamp(version)
        if best_ts is None or ts >= best_ts:
            best_index, best_ts = index, ts
    return best_index


def select_current_version(versions: Sequence[ListVersion]) -> Optional[ListVersion]:
    index = select_current_index(versions)
    return versions[index] if index is not None else None


def find_version_index(versions: Sequence[ListVersion], version_timestamp: str) -> Optional[int]:
    for index, version in enumerate(versions):
        if version.version_timestamp == version_timestamp:
            return index
    return None
