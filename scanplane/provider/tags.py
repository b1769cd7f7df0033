"""Tag-based filtering of discovered assets."""

from scanplane.models.model_scan import Tag


def _has_all_tags(asset_tags: dict[str, str], selector: list[Tag]) -> bool:
    return all(asset_tags.get(tag.key) == tag.value for tag in selector)


def has_include_tags(asset_tags: dict[str, str] | None, selector: list[Tag] | None) -> bool:
    """Whether an asset passes an inclusion selector.

    AND logic: the asset must carry every selector tag with the same value.
    An absent or empty selector includes everything; an asset without tags
    never matches a non-empty selector.
    """
    if not selector:
        return True
    if not asset_tags:
        return False
    return _has_all_tags(asset_tags, selector)


def has_exclude_tags(asset_tags: dict[str, str] | None, selector: list[Tag] | None) -> bool:
    """Whether an asset is hit by an exclusion selector.

    AND logic as in has_include_tags. An absent or empty selector excludes
    nothing; an asset without tags is never excluded.
    """
    if not selector:
        return False
    if not asset_tags:
        return False
    return _has_all_tags(asset_tags, selector)


def convert_tags(tags: dict[str, str | None] | None) -> list[Tag]:
    """Convert a provider tag map to a list of tags, sorted by key."""
    if not tags:
        return []
    return [Tag(key=k, value=v or "") for k, v in sorted(tags.items())]
