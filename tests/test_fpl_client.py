"""Tests for FPL API client with mocked HTTP responses."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import respx
from httpx import Response

from app.schemas.upstream import BOOTSTRAP_ADAPTER, FplBootstrapStatic
from app.services.fpl_client import (
    FplApiClient,
    UpstreamUnavailableError,
    get_current_gameweek,
    is_matchday,
)
from tests.factories import (
    BOOTSTRAP_URL,
    FIXTURES_URL,
    element_summary_url,
    fixtures_response,
    make_bootstrap,
    make_element,
    make_element_summary,
    make_event,
)


def bootstrap_model(**kwargs) -> FplBootstrapStatic:
    return BOOTSTRAP_ADAPTER.validate_python(make_bootstrap(**kwargs))


class TestFplClientBootstrap:
    """Tests for bootstrap-static fetching through the cache."""

    @respx.mock
    async def test_miss_fetches_and_caches(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))

        first = await fpl_client.fetch_bootstrap()
        second = await fpl_client.fetch_bootstrap()

        assert isinstance(first.data, FplBootstrapStatic)
        assert len(first.data.teams) == 4
        assert first.source_status == "fresh"
        assert second.source_status == "fresh"
        assert route.call_count == 1

    @respx.mock
    async def test_sends_user_agent(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))

        await fpl_client.fetch_bootstrap()

        assert route.calls.last.request.headers["User-Agent"] == "ApexPL/1.0"

    @respx.mock
    async def test_stale_entry_served_and_refreshed(self, fpl_client: FplApiClient, clock):
        """Stale data comes back immediately; the refresh runs in the background."""
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))
        await fpl_client.fetch_bootstrap()
        clock.advance(fpl_client.settings.cache_ttl_bootstrap + 60)

        stale = await fpl_client.fetch_bootstrap()
        await fpl_client.cache.wait_for_refreshes()
        fresh = await fpl_client.fetch_bootstrap()

        assert stale.source_status == "stale"
        assert fresh.source_status == "fresh"
        assert route.call_count == 2

    @respx.mock
    async def test_failed_refresh_keeps_serving_stale(self, fpl_client: FplApiClient, clock):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))
        await fpl_client.fetch_bootstrap()
        clock.advance(fpl_client.settings.cache_ttl_bootstrap + 60)
        route.mock(return_value=Response(503))

        await fpl_client.fetch_bootstrap()
        await fpl_client.cache.wait_for_refreshes()
        result = await fpl_client.fetch_bootstrap()

        assert result.source_status == "stale"
        assert len(result.data.elements) == 8

    @respx.mock
    async def test_live_gameweek_uses_matchday_ttl(self, fpl_client: FplApiClient, clock):
        """During a live gameweek the snapshot goes stale after the shorter TTL."""
        live = make_bootstrap(events=[make_event(3, is_current=True)])
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=live))
        await fpl_client.fetch_bootstrap()
        clock.advance(fpl_client.settings.cache_ttl_bootstrap_matchday + 5 * 60)

        result = await fpl_client.fetch_bootstrap()
        await fpl_client.cache.wait_for_refreshes()

        assert result.source_status == "stale"
        assert route.call_count == 2

    @respx.mock
    async def test_regular_ttl_outside_matchday(self, fpl_client: FplApiClient, clock):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))
        await fpl_client.fetch_bootstrap()
        clock.advance(fpl_client.settings.cache_ttl_bootstrap_matchday + 5 * 60)

        result = await fpl_client.fetch_bootstrap()

        assert result.source_status == "fresh"
        assert route.call_count == 1

    @respx.mock
    async def test_concurrent_misses_share_one_request(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))

        results = await asyncio.gather(*(fpl_client.fetch_bootstrap() for _ in range(5)))

        assert route.call_count == 1
        assert all(r.data.teams[0].short_name == "ARS" for r in results)

    @respx.mock
    async def test_null_optional_fields_use_defaults(self, fpl_client: FplApiClient):
        element = make_element(99, team=1, form=None, minutes=None, photo=None)
        respx.get(BOOTSTRAP_URL).mock(
            return_value=Response(200, json=make_bootstrap(elements=[element]))
        )

        result = await fpl_client.fetch_bootstrap()

        player = result.data.elements[0]
        assert player.form == "0"
        assert player.minutes == 0
        assert player.photo == ""


class TestFplClientRetries:
    """Tests for retry behaviour and failure handling."""

    @respx.mock
    async def test_retries_on_server_error(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(
            side_effect=[Response(503), Response(200, json=make_bootstrap())]
        )

        result = await fpl_client.fetch_bootstrap()

        assert route.call_count == 2
        assert result.source_status == "fresh"

    @respx.mock
    async def test_retries_on_invalid_payload(self, fpl_client: FplApiClient):
        """A body that fails validation counts as a failed attempt."""
        route = respx.get(BOOTSTRAP_URL).mock(
            side_effect=[
                Response(200, json={"events": "nope"}),
                Response(200, json=make_bootstrap()),
            ]
        )

        result = await fpl_client.fetch_bootstrap()

        assert route.call_count == 2
        assert len(result.data.events) == 3

    @respx.mock
    async def test_client_error_not_retried(self, fpl_client: FplApiClient):
        route = respx.get(element_summary_url(5)).mock(return_value=Response(404))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await fpl_client.fetch_element_summary(5)

        assert route.call_count == 1
        assert exc_info.value.key == fpl_client.keys.element_summary(5)

    @respx.mock
    async def test_gives_up_after_max_attempts(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(500))

        with pytest.raises(UpstreamUnavailableError):
            await fpl_client.fetch_bootstrap()

        assert route.call_count == fpl_client.settings.upstream_max_attempts

    @respx.mock
    async def test_failure_does_not_poison_cache(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(500))
        with pytest.raises(UpstreamUnavailableError):
            await fpl_client.fetch_bootstrap()

        route.mock(return_value=Response(200, json=make_bootstrap()))
        result = await fpl_client.fetch_bootstrap()

        assert result.source_status == "fresh"

    @respx.mock
    async def test_hung_request_times_out_and_is_retried(self, cache, deduplicator, settings):
        """A request slower than the hard timeout counts as a retryable failure."""
        fast_settings = settings.model_copy(update={"upstream_timeout_seconds": 0.05})
        calls = 0

        async def hang_twice(request):
            nonlocal calls
            calls += 1
            if calls < 3:
                await asyncio.sleep(1)
            return Response(200, json=make_bootstrap())

        respx.get(BOOTSTRAP_URL).mock(side_effect=hang_twice)

        async with FplApiClient(cache, deduplicator, fast_settings) as client:
            result = await asyncio.wait_for(client.fetch_bootstrap(), timeout=2)

        assert calls == 3
        assert result.source_status == "fresh"

    @respx.mock
    async def test_failed_miss_serves_entry_written_meanwhile(
        self, fpl_client: FplApiClient, clock
    ):
        """A failed fetch falls back to whatever reached the cache during it."""
        ttl = fpl_client.settings.cache_ttl_bootstrap

        async def late_writer_then_fail(request):
            if not await fpl_client.cache.get(fpl_client.keys.bootstrap, ttl):
                await fpl_client.cache.set(fpl_client.keys.bootstrap, make_bootstrap(), ttl)
                clock.advance(ttl + 60)
            return Response(503)

        respx.get(BOOTSTRAP_URL).mock(side_effect=late_writer_then_fail)

        result = await fpl_client.fetch_bootstrap()

        assert result.source_status == "stale"
        assert len(result.data.teams) == 4


class TestFplClientOtherResources:
    @respx.mock
    async def test_fixtures_scoped_by_event(self, fpl_client: FplApiClient):
        route = respx.get(FIXTURES_URL).mock(side_effect=fixtures_response)

        round_two = await fpl_client.fetch_fixtures(2)
        season = await fpl_client.fetch_fixtures()

        assert route.calls[0].request.url.params["event"] == "2"
        assert {f.id for f in round_two.data} == {201, 202}
        assert len(season.data) == 6

    @respx.mock
    async def test_element_summary(self, fpl_client: FplApiClient):
        respx.get(element_summary_url(10)).mock(
            return_value=Response(200, json=make_element_summary(10, [4, 8]))
        )

        result = await fpl_client.fetch_element_summary(10)

        assert [h.total_points for h in result.data.history] == [4, 8]
        assert result.data.fixtures[0].is_home is True

    @respx.mock
    async def test_probe_bypasses_cache(self, fpl_client: FplApiClient):
        route = respx.get(BOOTSTRAP_URL).mock(return_value=Response(200, json=make_bootstrap()))

        await fpl_client.probe_bootstrap()
        latency, elements = await fpl_client.probe_bootstrap()

        assert route.call_count == 2
        assert elements == 8
        assert latency >= 0


class TestGameweekHelpers:
    def test_current_gameweek_prefers_current(self):
        assert get_current_gameweek(bootstrap_model()).id == 2

    def test_current_gameweek_falls_back_to_next(self):
        bootstrap = bootstrap_model(events=[make_event(1, is_next=True)])

        assert get_current_gameweek(bootstrap).id == 1

    def test_current_gameweek_none(self):
        assert get_current_gameweek(bootstrap_model(events=[make_event(1)])) is None

    def test_matchday_window(self):
        """Matchday starts two hours before the current deadline."""
        deadline = datetime(2024, 8, 24, 10, 0, tzinfo=timezone.utc)
        bootstrap = bootstrap_model(
            events=[make_event(3, is_current=True, deadline_time="2024-08-24T10:00:00Z")]
        )

        assert is_matchday(bootstrap, now=deadline - timedelta(hours=1))
        assert is_matchday(bootstrap, now=deadline + timedelta(days=1))
        assert not is_matchday(bootstrap, now=deadline - timedelta(hours=3))

    def test_finished_event_is_not_matchday(self):
        assert not is_matchday(bootstrap_model(), now=datetime(2024, 8, 24, tzinfo=timezone.utc))
