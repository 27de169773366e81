import json

import pytest

from shared.config import (
    AppConfig,
    load_config,
    parse_sort_order,
    parse_tag_match,
    parse_target_type,
    parse_vote_action,
)
from shared.enum.sort_order import SortOrder
from shared.enum.tag_match import TagMatch
from shared.enum.target_type import TargetType
from shared.enum.vote_type import VoteAction
from shared.errors import ValidationError


def test_missing_config_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.json"))
    assert config == AppConfig()
    assert config.listing.default_page_size == 20
    assert config.listing.max_page_size == 100
    assert config.voting.max_retries == 3


def test_load_config_reads_sections(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "database": {"url": "sqlite+aiosqlite:///other.db"},
                "listing": {"default_sort_order": "ASC", "default_tag_match": "all"},
                "images": {"base_url": "https://cdn.example.com/img/"},
            }
        ),
        encoding="utf-8",
    )
    config = load_config(str(path))
    assert config.database.url == "sqlite+aiosqlite:///other.db"
    assert config.listing.default_sort_order == SortOrder.ASC
    assert config.listing.default_tag_match == TagMatch.ALL
    assert config.images.base_url == "https://cdn.example.com/img/"


def test_parsers_are_case_insensitive():
    assert parse_sort_order(None) is None
    assert parse_sort_order("DESC") == SortOrder.DESC
    assert parse_tag_match("any") == TagMatch.ANY
    assert parse_target_type("answer") == TargetType.ANSWER
    assert parse_target_type(TargetType.QUESTION) == TargetType.QUESTION
    assert parse_vote_action("Cancel") == VoteAction.CANCEL


@pytest.mark.parametrize(
    "parser, value",
    [
        (parse_sort_order, "up"),
        (parse_tag_match, "most"),
        (parse_target_type, "Comment"),
        (parse_target_type, None),
        (parse_vote_action, "like"),
    ],
)
def test_parsers_reject_unknown_values(parser, value):
    with pytest.raises(ValidationError):
        parser(value)
