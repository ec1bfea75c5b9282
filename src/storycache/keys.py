"""Cache key construction.

Keys are colon-separated segments: a resource family first, then ordered
positional parts, then keyword parameters sorted by name. Colons and
backslashes inside values are escaped, so distinct parameter combinations
never collide and identical ones always produce the same key.
"""

from enum import Enum

_ESCAPE_MAP = {"\\": "\\\\", ":": "\\:"}
_UNESCAPE_MAP = {"\\\\": "\\", "\\:": ":"}


class Family(str, Enum):
    """Key prefixes of the resource families the platform caches."""

    STATS = "stats"
    DASHBOARD = "dashboard"
    LANDING = "landing"
    USERS = "users"
    STORIES = "stories"
    ENGAGEMENT = "engagement"


def _escape(part: str) -> str:
    result = part
    for char, escaped in _ESCAPE_MAP.items():
        result = result.replace(char, escaped)
    return result


def _format(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def make_key(resource: str | Family, *parts: object, **params: object) -> str:
    """
    Build a deterministic key.

    Example:
        make_key("stories", "list", "page", 2, category="horror", published=True)
        # "stories:list:page:2:category:horror:published:true"

    Parameters whose value is None are omitted.
    """
    family = resource.value if isinstance(resource, Family) else resource
    segments = [_escape(family)]
    segments.extend(_escape(_format(p)) for p in parts)
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        segments.append(_escape(name))
        segments.append(_escape(_format(value)))
    return ":".join(segments)


def split_key(key: str) -> list[str]:
    """Split a key back into its unescaped segments."""
    parts: list[str] = []
    current = ""
    i = 0

    while i < len(key):
        if key[i] == "\\":
            if i + 1 < len(key):
                escaped = key[i : i + 2]
                if escaped in _UNESCAPE_MAP:
                    current += _UNESCAPE_MAP[escaped]
                    i += 2
                    continue
            current += key[i]
            i += 1
        elif key[i] == ":":
            parts.append(current)
            current = ""
            i += 1
        else:
            current += key[i]
            i += 1

    parts.append(current)
    return parts


def family_of(key: str) -> str:
    """First segment of a key ("users:list:page:1" -> "users")."""
    return split_key(key)[0]


def family_pattern(family: str | Family) -> str:
    """Glob pattern matching every key of a family."""
    name = family.value if isinstance(family, Family) else family
    return f"{_escape(name)}:*"


# Named keys used by the platform's handlers


def dashboard_stats_key(variant: str = "default") -> str:
    return make_key(Family.DASHBOARD, "stats", variant)


def landing_stats_key(page: int = 1, limit: int = 8) -> str:
    return make_key(Family.LANDING, "stats", "page", page, "limit", limit)


def user_stats_key(user_id: str = "all") -> str:
    return make_key(Family.USERS, "stats", user_id)


def story_stats_key(story_id: str = "all") -> str:
    return make_key(Family.STORIES, "stats", story_id)


def user_list_key(page: int = 1, limit: int = 20, **filters: object) -> str:
    return make_key(Family.USERS, "list", "page", page, "limit", limit, **filters)


def story_list_key(page: int = 1, limit: int = 20, **filters: object) -> str:
    return make_key(Family.STORIES, "list", "page", page, "limit", limit, **filters)
