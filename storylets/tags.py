"""
storylets/tags.py -- Storylet tag parsing and the per-id tag cache.

Tags are parsed exactly once, when a storylet is registered:

    #once            -> {"once": True}
    #desc: Some text -> {"desc": "Some text"}
    #repeat: FALSE   -> {"repeat": False}

Keys are lower-cased; only the literal strings "true"/"false" (any case) are
coerced to booleans, every other value is kept as a trimmed string.
"""

from __future__ import annotations

from typing import Any, Iterable

TagValue = bool | str


def parse_tags(raw_tags: Iterable[str] | None) -> dict[str, TagValue]:
    """Parse raw tag strings into a ``{key: value}`` map."""
    result: dict[str, TagValue] = {}
    if not raw_tags:
        return result

    for tag in raw_tags:
        key, sep, raw_value = tag.partition(":")
        key = key.strip().lower()
        if not key:
            continue
        if not sep:
            result[key] = True
            continue
        value = raw_value.strip()
        lowered = value.lower()
        if lowered == "true":
            result[key] = True
        elif lowered == "false":
            result[key] = False
        else:
            result[key] = value
    return result


class TagCache:
    """Parsed tags for every registered storylet id."""

    def __init__(self):
        self._tags: dict[str, dict[str, TagValue]] = {}

    def record(self, storylet_id: str, raw_tags: Iterable[str] | None) -> dict[str, TagValue]:
        """Parse and store tags for *storylet_id*, replacing any previous entry."""
        parsed = parse_tags(raw_tags)
        self._tags[storylet_id] = parsed
        return dict(parsed)

    def get(self, storylet_id: str, key: str, default: Any = None) -> Any:
        tags = self._tags.get(storylet_id)
        if tags is None:
            return default
        return tags.get(key.lower(), default)

    def matches(self, storylet_id: str, key: str, value: Any) -> bool:
        """True if the storylet has tag *key* with exactly *value*.

        Comparison is type-strict so that ``True`` never matches ``1`` and the
        string ``"true"`` (already coerced at parse time) never matches a str.
        """
        tags = self._tags.get(storylet_id)
        if tags is None:
            return False
        key = key.lower()
        if key not in tags:
            return False
        stored = tags[key]
        return type(stored) is type(value) and stored == value

    def tags_for(self, storylet_id: str) -> dict[str, TagValue]:
        return dict(self._tags.get(storylet_id, {}))

    def __contains__(self, storylet_id: str) -> bool:
        return storylet_id in self._tags

    def __len__(self) -> int:
        return len(self._tags)
