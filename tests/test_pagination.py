import math

import pytest

from gitlytics.errors import NotFound, RateLimited, UpstreamError
from gitlytics.pagination import Page, fetch_all


class FakePager:
    """Serves ``total`` integers in pages; ``fail`` maps page -> exception."""

    def __init__(self, total, fail=None, link_header=False):
        self.items = list(range(total))
        self.fail = fail or {}
        self.link_header = link_header
        self.requests = []

    def get_page(self, endpoint, params=None):
        page, per_page = params["page"], params["per_page"]
        self.requests.append((endpoint, page, per_page))
        if page in self.fail:
            raise self.fail[page]
        chunk = self.items[(page - 1) * per_page: page * per_page]
        has_next = None
        if self.link_header:
            has_next = page * per_page < len(self.items)
        return Page(items=chunk, has_next=has_next)


@pytest.mark.parametrize("total,per_page", [(0, 10), (7, 10), (25, 10), (250, 100)])
def test_collects_everything_with_ceil_requests(total, per_page):
    pager = FakePager(total)
    result = fetch_all(pager, "/e", per_page=per_page)
    assert result == list(range(total))
    assert not result.partial
    assert len(pager.requests) == max(1, math.ceil(total / per_page))


def test_exact_multiple_costs_one_trailing_empty_request():
    pager = FakePager(20)
    assert fetch_all(pager, "/e", per_page=10) == list(range(20))
    assert [p for _, p, _ in pager.requests] == [1, 2, 3]


def test_link_header_avoids_trailing_request():
    pager = FakePager(20, link_header=True)
    assert fetch_all(pager, "/e", per_page=10) == list(range(20))
    assert len(pager.requests) == 2


@pytest.mark.parametrize("total,max_items", [(250, 150), (250, 100), (30, 100), (250, 0), (250, 1)])
def test_max_items_caps_result(total, max_items):
    result = fetch_all(FakePager(total), "/e", per_page=100, max_items=max_items)
    assert len(result) == min(total, max_items)
    assert result == list(range(min(total, max_items)))


def test_cap_mid_page_stops_without_further_requests():
    pager = FakePager(1000)
    result = fetch_all(pager, "/e", per_page=100, max_items=150)
    assert len(pager.requests) == 2
    assert result.next_page == 2  # page 2 was cut short


def test_cap_on_page_boundary_points_to_next_page():
    result = fetch_all(FakePager(1000), "/e", per_page=100, max_items=500)
    assert result.next_page == 6


def test_start_page_skips_earlier_pages():
    pager = FakePager(250)
    result = fetch_all(pager, "/e", per_page=100, start_page=2)
    assert result == list(range(100, 250))
    assert pager.requests[0][1] == 2


def test_rate_limit_after_progress_returns_partial():
    pager = FakePager(500, fail={3: RateLimited("quota", 403)})
    result = fetch_all(pager, "/e", per_page=100)
    assert result == list(range(200))
    assert result.partial
    assert result.next_page == 3


def test_rate_limit_on_first_page_propagates():
    pager = FakePager(500, fail={1: RateLimited("quota", 403)})
    with pytest.raises(RateLimited):
        fetch_all(pager, "/e", per_page=100)


@pytest.mark.parametrize("error", [NotFound("gone", 404), UpstreamError("boom", 500)])
def test_other_errors_propagate_even_after_progress(error):
    pager = FakePager(500, fail={2: error})
    with pytest.raises(type(error)):
        fetch_all(pager, "/e", per_page=100)


def test_rejects_bad_arguments():
    with pytest.raises(ValueError):
        fetch_all(FakePager(1), "/e", per_page=101)
    with pytest.raises(ValueError):
        fetch_all(FakePager(1), "/e", start_page=0)
