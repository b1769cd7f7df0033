"""Tests for tag-based scope filtering."""

import pytest

from scanplane.models.model_scan import Tag
from scanplane.provider.tags import convert_tags, has_exclude_tags, has_include_tags

ENV_PROD = Tag(key="env", value="prod")
TEAM_WEB = Tag(key="team", value="web")


class TestIncludeTags:
    """Tests for has_include_tags."""

    def test_no_selector_includes_everything(self):
        assert has_include_tags({"env": "dev"}, None)
        assert has_include_tags(None, [])

    def test_untagged_asset_never_matches(self):
        assert not has_include_tags(None, [ENV_PROD])
        assert not has_include_tags({}, [ENV_PROD])

    def test_all_tags_required(self):
        """AND logic: every selector tag must be present with the same value."""
        tags = {"env": "prod", "team": "web", "owner": "alice"}

        assert has_include_tags(tags, [ENV_PROD, TEAM_WEB])
        assert not has_include_tags({"env": "prod"}, [ENV_PROD, TEAM_WEB])
        assert not has_include_tags({"env": "dev", "team": "web"}, [ENV_PROD, TEAM_WEB])


class TestExcludeTags:
    """Tests for has_exclude_tags."""

    def test_no_selector_excludes_nothing(self):
        assert not has_exclude_tags({"env": "prod"}, None)
        assert not has_exclude_tags({"env": "prod"}, [])

    def test_untagged_asset_never_excluded(self):
        assert not has_exclude_tags(None, [ENV_PROD])

    def test_all_tags_required(self):
        assert has_exclude_tags({"env": "prod", "team": "web"}, [ENV_PROD, TEAM_WEB])
        assert not has_exclude_tags({"env": "prod"}, [ENV_PROD, TEAM_WEB])


class TestConvertTags:
    """Tests for convert_tags and Tag.parse."""

    def test_sorted_by_key(self):
        tags = convert_tags({"team": "web", "env": None})

        assert tags == [Tag(key="env", value=""), Tag(key="team", value="web")]

    def test_empty(self):
        assert convert_tags(None) == []

    def test_parse(self):
        assert Tag.parse("env=prod") == ENV_PROD
        assert Tag.parse("note=a=b") == Tag(key="note", value="a=b")

    @pytest.mark.parametrize("text", ["env", "=prod"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            Tag.parse(text)
