"""Unit tests for schedulebot.fetcher using httpx.MockTransport."""

from unittest.mock import AsyncMock

import httpx
import pytest

from schedulebot import fetcher as fetcher_module
from schedulebot.exceptions import (
    CalendarFetchError,
    CalendarNetworkError,
    CalendarTimeoutError,
)
from schedulebot.fetcher import MAX_BACKOFF_SECONDS, ICSFetcher
from schedulebot.models import CalendarSource

pytestmark = pytest.mark.unit

SOURCE = CalendarSource(name="calendar", url="https://example.com/primary.ics", timeout=5)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def no_sleep(monkeypatch) -> AsyncMock:
    """Skip retry backoff delays."""
    sleep = AsyncMock()
    monkeypatch.setattr(fetcher_module.asyncio, "sleep", sleep)
    return sleep


class TestValidateUrl:
    """Only absolute http(s) URLs are fetched."""

    def test_validate_url_when_https_then_allows(self) -> None:
        assert ICSFetcher.validate_url("https://example.com/calendar.ics") is True

    def test_validate_url_when_http_then_allows(self) -> None:
        assert ICSFetcher.validate_url("http://example.com/calendar.ics") is True

    def test_validate_url_when_file_scheme_then_blocks(self) -> None:
        assert ICSFetcher.validate_url("file:///etc/passwd") is False

    def test_validate_url_when_empty_hostname_then_blocks(self) -> None:
        assert ICSFetcher.validate_url("http:///calendar.ics") is False


class TestFetchText:
    """Status and transport error handling."""

    @pytest.mark.asyncio
    async def test_fetch_text_when_ok_then_returns_body(self, simple_settings, ics_builder) -> None:
        body = ics_builder()
        client = _client(lambda request: httpx.Response(200, text=body))

        async with ICSFetcher(simple_settings, client=client) as fetcher:
            assert await fetcher.fetch_text(SOURCE) == body

        await client.aclose()

    @pytest.mark.asyncio
    async def test_fetch_text_when_custom_headers_then_sent(self, simple_settings) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["authorization"] = request.headers.get("authorization")
            return httpx.Response(200, text="BEGIN:VCALENDAR")

        source = SOURCE.model_copy(update={"custom_headers": {"Authorization": "Bearer t"}})
        async with _client(handler) as client:
            await ICSFetcher(simple_settings, client=client).fetch_text(source)

        assert seen["authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_fetch_text_when_404_then_raises_with_body(self, simple_settings) -> None:
        async with _client(lambda request: httpx.Response(404, text="Not Found")) as client:
            with pytest.raises(CalendarFetchError) as exc_info:
                await ICSFetcher(simple_settings, client=client).fetch_text(SOURCE)

        assert str(exc_info.value) == "Not Found"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_fetch_text_when_error_body_empty_then_status_message(
        self, simple_settings
    ) -> None:
        async with _client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(CalendarFetchError, match="HTTP 500"):
                await ICSFetcher(simple_settings, client=client).fetch_text(SOURCE)

    @pytest.mark.asyncio
    async def test_fetch_text_when_status_error_then_not_retried(self, simple_settings) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, text="busy")

        async with _client(handler) as client:
            with pytest.raises(CalendarFetchError):
                await ICSFetcher(simple_settings, client=client).fetch_text(SOURCE)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fetch_text_when_timeouts_then_retries_and_raises(
        self, simple_settings, no_sleep
    ) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(CalendarTimeoutError):
                await ICSFetcher(simple_settings, client=client).fetch_text(SOURCE)

        assert len(calls) == simple_settings.max_retries + 1
        assert no_sleep.await_count == simple_settings.max_retries

    @pytest.mark.asyncio
    async def test_fetch_text_when_connect_error_then_network_error(
        self, simple_settings, no_sleep
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(CalendarNetworkError):
                await ICSFetcher(simple_settings, client=client).fetch_text(SOURCE)

    @pytest.mark.asyncio
    async def test_fetch_text_when_transient_failure_then_recovers(
        self, simple_settings, no_sleep
    ) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, text="BEGIN:VCALENDAR")

        async with _client(handler) as client:
            text = await ICSFetcher(simple_settings, client=client).fetch_text(SOURCE)

        assert text == "BEGIN:VCALENDAR"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_fetch_text_when_invalid_url_then_raises_without_request(
        self, simple_settings
    ) -> None:
        handler = AsyncMock()
        source = SOURCE.model_copy(update={"url": "ftp://example.com/cal.ics"})

        async with _client(handler) as client:
            with pytest.raises(CalendarFetchError, match="Invalid calendar URL"):
                await ICSFetcher(simple_settings, client=client).fetch_text(source)

        handler.assert_not_called()


class TestFetchCalendar:
    """Every failure becomes an error result."""

    @pytest.mark.asyncio
    async def test_fetch_calendar_when_ok_then_success_result(
        self, simple_settings, ics_builder, la_tz
    ) -> None:
        body = ics_builder(
            "BEGIN:VEVENT",
            "UID:lunch",
            "DTSTART:20250603T190000Z",
            "DTEND:20250603T200000Z",
            "END:VEVENT",
        )

        async with _client(lambda request: httpx.Response(200, text=body)) as client:
            result = await ICSFetcher(simple_settings, client=client).fetch_calendar(SOURCE, la_tz)

        assert result.ok
        assert list(result.data) == ["lunch"]

    @pytest.mark.asyncio
    async def test_fetch_calendar_when_http_error_then_error_result(
        self, simple_settings, la_tz
    ) -> None:
        async with _client(lambda request: httpx.Response(403, text="Forbidden")) as client:
            result = await ICSFetcher(simple_settings, client=client).fetch_calendar(SOURCE, la_tz)

        assert not result.ok
        assert result.error == "Forbidden"

    @pytest.mark.asyncio
    async def test_fetch_calendar_when_body_not_ics_then_error_result(
        self, simple_settings, la_tz
    ) -> None:
        async with _client(lambda request: httpx.Response(200, text="<html></html>")) as client:
            result = await ICSFetcher(simple_settings, client=client).fetch_calendar(SOURCE, la_tz)

        assert result.data is None
        assert "valid ICS" in result.error


class TestClientLifecycle:
    """Client ownership."""

    @pytest.mark.asyncio
    async def test_close_when_client_external_then_left_open(self, simple_settings) -> None:
        client = _client(lambda request: httpx.Response(200))
        fetcher = ICSFetcher(simple_settings, client=client)

        await fetcher.close()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_when_owned_then_client_closed(self, simple_settings) -> None:
        async with ICSFetcher(simple_settings) as fetcher:
            client = fetcher.client
            assert client is not None

        assert client.is_closed
        assert fetcher.client is None


def test_calculate_backoff_when_called_then_capped_with_jitter(simple_settings) -> None:
    fetcher = ICSFetcher(simple_settings)

    assert 1.0 <= fetcher._calculate_backoff(0, 2.0) <= 1.3
    assert fetcher._calculate_backoff(20, 2.0) <= MAX_BACKOFF_SECONDS * 1.3
