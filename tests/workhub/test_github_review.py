"""Tests for the GitHub client and review system over httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from src.workhub.errors import InputValidationError, RateLimitError, ReviewSystemError
from src.workhub.models import ReviewState
from src.workhub.parsing import ParseFailure
from src.workhub.review.client import GitHubClient
from src.workhub.review.github import GitHubReviewSystem, parse_pull, split_repository


def run_async(coro):
    return asyncio.run(coro)


def pull(number, branch="feat/x", login="dev1", **overrides):
    data = {
        "number": number,
        "title": f"PR {number}",
        "state": "open",
        "draft": False,
        "html_url": f"https://github.com/acme/widgets/pull/{number}",
        "head": {"ref": branch},
        "base": {"ref": "main"},
        "user": {"login": login},
        "created_at": "2024-03-01T10:00:00Z",
        "updated_at": "2024-03-02T10:00:00Z",
        "merged_at": None,
    }
    data.update(overrides)
    return data


def review_system(handler, **client_kwargs):
    client = GitHubClient(
        token="ghp_test",
        base_delay=0,
        transport=httpx.MockTransport(handler),
        **client_kwargs,
    )
    return client, GitHubReviewSystem(client)


async def _using(client, action):
    async with client:
        return await action()


class TestParsePull:
    def test_open_pull(self):
        request = parse_pull(pull(5, branch="feat/login", draft=True), "acme/widgets").value

        assert request.number == 5
        assert request.branch == "feat/login"
        assert request.base_branch == "main"
        assert request.state == ReviewState.OPEN
        assert request.is_draft is True
        assert request.author == "dev1"
        assert request.created.year == 2024

    def test_merged_pull(self):
        data = pull(5, state="closed", merged_at="2024-03-03T00:00:00Z")

        assert parse_pull(data, "acme/widgets").value.state == ReviewState.MERGED

    def test_closed_pull(self):
        assert parse_pull(pull(5, state="closed"), "acme/widgets").value.state == ReviewState.CLOSED

    def test_missing_head_is_a_failure(self):
        data = pull(5)
        del data["head"]

        assert isinstance(parse_pull(data, "acme/widgets"), ParseFailure)


class TestSplitRepository:
    def test_valid(self):
        assert split_repository("acme/widgets") == ("acme", "widgets")

    @pytest.mark.parametrize("value", ["acme", "acme/", "/widgets", "a/b/c"])
    def test_invalid(self, value):
        with pytest.raises(InputValidationError):
            split_repository(value)


class TestListOpen:
    def test_follows_pagination_and_sends_auth(self):
        seen = []

        def handler(request):
            seen.append(request)
            page = int(request.url.params["page"])
            if page == 1:
                return httpx.Response(200, json=[pull(n) for n in range(1, 101)])
            return httpx.Response(200, json=[pull(101)])

        client, system = review_system(handler)
        requests = run_async(_using(client, lambda: system.list_open("acme/widgets")))

        assert len(requests) == 101
        assert [r.url.params["page"] for r in seen] == ["1", "2"]
        assert seen[0].url.path == "/repos/acme/widgets/pulls"
        assert seen[0].url.params["state"] == "open"
        assert seen[0].headers["authorization"] == "Bearer ghp_test"

    def test_author_filter_and_malformed_entries(self):
        broken = pull(3)
        del broken["base"]

        def handler(request):
            return httpx.Response(
                200, json=[pull(1, login="dev1"), pull(2, login="dev2"), broken]
            )

        client, system = review_system(handler)
        mine = run_async(_using(client, lambda: system.list_open("acme/widgets", author="dev1")))

        assert [r.number for r in mine] == [1]

    def test_retries_transient_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json=[])

        client, system = review_system(handler)

        assert run_async(_using(client, lambda: system.list_open("acme/widgets"))) == []
        assert len(attempts) == 2

    def test_rate_limit_is_not_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "retry-after": "30"},
                json={"message": "API rate limit exceeded"},
            )

        client, system = review_system(handler)

        with pytest.raises(RateLimitError) as exc_info:
            run_async(_using(client, lambda: system.list_open("acme/widgets")))

        assert exc_info.value.retry_after == 30
        assert len(attempts) == 1

    def test_persistent_failure_raises(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        client, system = review_system(handler, max_retries=2)

        with pytest.raises(ReviewSystemError) as exc_info:
            run_async(_using(client, lambda: system.list_open("acme/widgets")))

        assert exc_info.value.status_code == 503


class TestSingleRequests:
    def test_get_missing_returns_none(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Not Found"})

        client, system = review_system(handler)

        assert run_async(_using(client, lambda: system.get("acme/widgets", 9))) is None

    def test_get_other_errors_propagate(self):
        def handler(request):
            return httpx.Response(401, json={"message": "Bad credentials"})

        client, system = review_system(handler)

        with pytest.raises(ReviewSystemError):
            run_async(_using(client, lambda: system.get("acme/widgets", 9)))

    def test_find_matches_branch_exactly(self):
        def handler(request):
            return httpx.Response(200, json=[pull(1, branch="Feat/X"), pull(2, branch="feat/x")])

        client, system = review_system(handler)
        found = run_async(_using(client, lambda: system.find("acme/widgets", "feat/x")))

        assert found.number == 2

    def test_create_posts_draft(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json=pull(77, branch="feat/new", draft=True))

        client, system = review_system(handler)
        created = run_async(
            _using(
                client,
                lambda: system.create(
                    "acme/widgets", "feat/new", "main", "feat: new", "body", draft=True
                ),
            )
        )

        assert created.number == 77
        assert bodies[0] == {
            "title": "feat: new",
            "body": "body",
            "head": "feat/new",
            "base": "main",
            "draft": True,
        }

    def test_close_patches_state(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=pull(8, state="closed"))

        client, system = review_system(handler)
        run_async(_using(client, lambda: system.close("acme/widgets", 8)))

        assert requests[0].method == "PATCH"
        assert requests[0].url.path == "/repos/acme/widgets/pulls/8"
        assert json.loads(requests[0].content) == {"state": "closed"}

    def test_update_cannot_merge(self):
        client, system = review_system(lambda request: httpx.Response(200, json={}))

        with pytest.raises(InputValidationError):
            run_async(
                _using(client, lambda: system.update("acme/widgets", 8, state=ReviewState.MERGED))
            )
