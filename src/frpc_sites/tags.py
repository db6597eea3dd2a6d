"""Tag helpers for classifying and filtering sites."""

import re
from collections import Counter
from collections.abc import Iterable, Sequence

from .models import Site

# Virtual tag matching sites that carry no tags; never stored on a site
UNTAGGED = "无标签"
MAX_TAG_LENGTH = 20

_TAG_SEPARATORS = re.compile(r"[,\s]+")


def normalize_tag(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.strip()


def validate_tag(tag: str) -> str:
    """Normalize a tag and check it can be stored.

    Returns:
        The trimmed tag

    Raises:
        ValueError: If the tag is empty, too long, reserved or contains a delimiter
    """
    normalized = normalize_tag(tag)
    if not normalized:
        raise ValueError("Tag cannot be empty")
    if len(normalized) > MAX_TAG_LENGTH:
        raise ValueError(f"Tag cannot be longer than {MAX_TAG_LENGTH} characters")
    if "|" in normalized or "," in normalized:
        raise ValueError("Tag cannot contain '|' or ','")
    if normalized == UNTAGGED:
        raise ValueError(f"'{UNTAGGED}' is reserved for untagged sites")
    return normalized


def clean_tags(tags: Iterable[object]) -> list[str]:
    """Trim tags, drop empties and duplicates, keep first-seen order."""
    seen: set[str] = set()
    cleaned = []
    for tag in tags:
        normalized = normalize_tag(tag)
        if normalized and normalized not in seen:
            seen.add(normalized)
            cleaned.append(normalized)
    return cleaned


def parse_tag_string(text: str) -> list[str]:
    """Split a comma or whitespace separated tag string."""
    if not isinstance(text, str):
        return []
    return clean_tags(_TAG_SEPARATORS.split(text))


def merge_tags(*tag_lists: Iterable[object]) -> list[str]:
    merged: list[object] = []
    for tags in tag_lists:
        merged.extend(tags)
    return clean_tags(merged)


def tag_counts(sites: Iterable[Site]) -> dict[str, int]:
    """Number of sites carrying each tag, most used first, ties by name."""
    counts = Counter(tag for site in sites for tag in clean_tags(site.tags))
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def all_tags(sites: Sequence[Site]) -> list[str]:
    """Sorted distinct tags, with UNTAGGED appended when any site has no tags."""
    tags = sorted({tag for site in sites for tag in site.tags})
    if any(not site.tags for site in sites):
        tags.append(UNTAGGED)
    return tags


def filter_sites_by_tags(
    sites: Sequence[Site], selected: Iterable[str], match_all: bool = False
) -> list[Site]:
    """Select sites by tag.

    With match_all False a site matches any selected tag; with match_all True
    it must carry every selected tag. Selecting UNTAGGED matches sites without
    tags (under match_all only when no real tag is selected as well).
    An empty selection returns every site.
    """
    wanted = clean_tags(selected)
    if not wanted:
        return list(sites)

    want_untagged = UNTAGGED in wanted
    real = [tag for tag in wanted if tag != UNTAGGED]

    def matches(site: Site) -> bool:
        if match_all:
            if want_untagged:
                return not site.tags and not real
            return all(tag in site.tags for tag in real)
        if want_untagged and not site.tags:
            return True
        return any(tag in site.tags for tag in real)

    return [site for site in sites if matches(site)]
