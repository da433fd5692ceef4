"""Tests for simulated review-system writes."""

from __future__ import annotations

import asyncio

from src.workhub.models import ReviewState
from src.workhub.review.simulated import (
    SIMULATED_NUMBER_BASE,
    ReviewRequestStore,
    SimulatedWriteReviewSystem,
)


def run_async(coro):
    return asyncio.run(coro)


def simulated(review_system, author="dev1"):
    return SimulatedWriteReviewSystem(review_system, ReviewRequestStore(), author=author)


class TestCreate:
    def test_numbers_start_at_base_and_increment(self, review_system):
        system = simulated(review_system)

        async def scenario():
            first = await system.create("acme/widgets", "feat/a", "main", "feat: a", "")
            second = await system.create("acme/gadgets", "feat/b", "main", "feat: b", "")
            return first, second

        first, second = run_async(scenario())

        assert first.number == SIMULATED_NUMBER_BASE
        assert second.number == SIMULATED_NUMBER_BASE + 1
        assert first.url == f"https://github.com/acme/widgets/pull/{SIMULATED_NUMBER_BASE}"
        assert first.is_draft is True
        assert review_system.created == []

    def test_separate_stores_do_not_share_requests(self, review_system):
        one, two = simulated(review_system), simulated(review_system)

        async def scenario():
            await one.create("acme/widgets", "feat/a", "main", "feat: a", "")
            return await two.list_open("acme/widgets")

        assert run_async(scenario()) == []


class TestReads:
    def test_simulated_requests_listed_before_real_ones(self, review_system, new_request):
        review_system.add(new_request(5, "feat/real"))
        system = simulated(review_system)

        async def scenario():
            await system.create("acme/widgets", "feat/sim", "main", "feat: sim", "")
            return await system.list_open("acme/widgets")

        listed = run_async(scenario())

        assert [r.number for r in listed] == [SIMULATED_NUMBER_BASE, 5]

    def test_author_filter_applies_to_simulated_requests(self, review_system):
        system = simulated(review_system, author="bot")

        async def scenario():
            await system.create("acme/widgets", "feat/sim", "main", "feat: sim", "")
            return (
                await system.list_open("acme/widgets", author="bot"),
                await system.list_open("acme/widgets", author="dev1"),
            )

        mine, theirs = run_async(scenario())

        assert len(mine) == 1
        assert theirs == []

    def test_real_listing_failure_serves_simulated_only(self, review_system):
        review_system.failing_repositories.add("acme/widgets")
        system = simulated(review_system)

        async def scenario():
            await system.create("acme/widgets", "feat/sim", "main", "feat: sim", "")
            return await system.list_open("acme/widgets")

        assert [r.branch for r in run_async(scenario())] == ["feat/sim"]

    def test_get_and_find_see_both_sources(self, review_system, new_request):
        review_system.add(new_request(5, "feat/real"))
        system = simulated(review_system)

        async def scenario():
            created = await system.create("acme/widgets", "feat/sim", "main", "feat: sim", "")
            return (
                await system.get("acme/widgets", created.number),
                await system.get("acme/widgets", 5),
                await system.find("acme/widgets", "feat/sim"),
            )

        stored, real, found = run_async(scenario())

        assert stored.branch == "feat/sim"
        assert real.number == 5
        assert found.number == SIMULATED_NUMBER_BASE


class TestUpdates:
    def test_close_hides_request_from_listing(self, review_system):
        system = simulated(review_system)

        async def scenario():
            created = await system.create("acme/widgets", "feat/sim", "main", "feat: sim", "")
            await system.close("acme/widgets", created.number)
            return (
                await system.list_open("acme/widgets"),
                await system.get("acme/widgets", created.number),
            )

        listed, stored = run_async(scenario())

        assert listed == []
        assert stored.state == ReviewState.CLOSED

    def test_update_title(self, review_system):
        system = simulated(review_system)

        async def scenario():
            created = await system.create("acme/widgets", "feat/sim", "main", "feat: sim", "")
            await system.update("acme/widgets", created.number, title="feat: renamed")
            return await system.get("acme/widgets", created.number)

        assert run_async(scenario()).title == "feat: renamed"

    def test_closing_real_request_never_reaches_real_system(self, review_system, new_request):
        review_system.add(new_request(5, "feat/real"))
        system = simulated(review_system)

        run_async(system.close("acme/widgets", 5))

        assert review_system.closed == []

    def test_store_clear_resets_numbering(self):
        store = ReviewRequestStore(number_base=500)
        store.allocate_number()
        store.clear()

        assert store.allocate_number() == 500
