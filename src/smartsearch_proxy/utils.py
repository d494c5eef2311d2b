"""Utility functions for upstream paths, token masking and keyword matching."""

from collections.abc import Iterable
from urllib.parse import quote

# Characters kept verbatim in a path segment; OData keys use the sub-delims
_SEGMENT_SAFE = "!$&'()*+,;=:@%"


def is_dot_segment(segment: str) -> bool:
    """True for ``.``, ``..`` and other all-dot segments clients collapse."""
    return bool(segment) and set(segment) == {"."}


def normalize_path(path: str) -> str:
    """Normalize a relative upstream path to ``/a/b`` form.

    Collapses repeated slashes, strips leading/trailing ones and drops dot
    segments. Segments are percent-encoded so the path stays ASCII. Case is
    preserved since OData entity-set names are case-sensitive.
    """
    segments = [
        quote(segment, safe=_SEGMENT_SAFE)
        for segment in path.strip().split("/")
        if segment and not is_dot_segment(segment)
    ]
    return "/" + "/".join(segments)


def join_path(template: str, entity_id: str | None = None) -> str:
    """Resolve a candidate template and optional id into a normalized path.

    The id is percent-encoded as a single path segment.

    Examples:
        >>> join_path("job/applicants")
        '/job/applicants'
        >>> join_path("/applicants/", "a b")
        '/applicants/a%20b'
    """
    path = normalize_path(template)
    if entity_id is not None and entity_id != "":
        path = f"{path.rstrip('/')}/{quote(str(entity_id), safe='')}"
    return path


def mask_token(token: str | None, visible: int = 4) -> str | None:
    """Return a preview of a token that never reveals it in full."""
    if not token:
        return None
    if len(token) <= visible * 2:
        return "*" * len(token)
    return f"{token[:visible]}...{token[-visible:]}"


def matches_keywords(name: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match of any keyword against a name."""
    lowered = name.lower()
    return any(keyword.lower() in lowered for keyword in keywords if keyword)
