import pytest

from search.pagination import compute_page_window
from shared.config import ListingConfig
from shared.errors import ValidationError


@pytest.mark.parametrize(
    "total, page, limit, expected",
    [
        (0, 1, 20, (1, 0, 0)),
        (0, 5, 20, (1, 0, 0)),
        (5, 1, 2, (1, 3, 0)),
        (5, 3, 2, (3, 3, 4)),
        (5, 9, 2, (3, 3, 4)),
        (4, 2, 2, (2, 2, 2)),
        (4, -3, 2, (1, 2, 0)),
    ],
)
def test_compute_page_window(total, page, limit, expected):
    window = compute_page_window(total, page, limit)
    assert (window.current_page, window.total_pages, window.offset) == expected
    assert window.limit == limit


def test_compute_page_window_rejects_empty_pages():
    with pytest.raises(ValueError):
        compute_page_window(10, 1, 0)


def test_listing_config_resolves_page_parameters():
    config = ListingConfig(default_page_size=10, max_page_size=50)
    assert config.resolve_page(None, None) == (1, 10)
    assert config.resolve_page(0, 5) == (1, 5)
    assert config.resolve_page(3, 500) == (3, 50)
    with pytest.raises(ValidationError):
        config.resolve_page(1, 0)
