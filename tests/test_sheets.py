import json

import httpx
import pytest

from barbershop.sheets import SheetsClient, SheetsError

from conftest import MSK, make_booking

URL = "https://script.google.com/macros/s/test/exec"


def _client(handler) -> SheetsClient:
    return SheetsClient(URL, MSK, timeout=5, transport=httpx.MockTransport(handler))


async def test_fetch_bookings_skips_malformed_rows():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["action"] = request.url.params.get("action")
        return httpx.Response(200, json={"bookings": [
            {"id": "a1", "barberId": "b1", "date": "2025-01-15", "timeSlot": "10:00", "status": "confirmed"},
            {"id": "broken", "barberId": "b1"},
            "garbage",
        ]})

    bookings = await _client(handler).fetch_bookings()
    assert seen == {"method": "GET", "action": "list"}
    assert [b.id for b in bookings] == ["a1"]


async def test_fetch_accepts_bare_list():
    def handler(request):
        return httpx.Response(200, json=[{"barberId": "b2", "date": "15.01.2025", "timeSlot": "9:00"}])

    bookings = await _client(handler).fetch_bookings()
    assert bookings[0].time_slot == "09:00"


async def test_redirect_is_followed():
    def handler(request):
        if request.url.host == "script.google.com":
            return httpx.Response(302, headers={"Location": "https://script.googleusercontent.com/echo?x=1"})
        return httpx.Response(200, json=[])

    assert await _client(handler).fetch_bookings() == []


async def test_create_posts_camel_case_payload():
    sent = {}

    def handler(request):
        sent.update(json.loads(request.content))
        return httpx.Response(200, json={"status": "ok"})

    await _client(handler).create_booking(make_booking())
    assert sent["action"] == "create"
    assert sent["barberId"] == "b3"
    assert sent["timeSlot"] == "12:00"


async def test_cancel_and_price_payloads():
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    client = _client(handler)
    b = make_booking()
    await client.cancel_booking(b)
    await client.update_price(b, 2700)
    assert sent[0] == {"action": "cancel", "id": b.id, "barberId": "b3", "date": "2025-01-15", "timeSlot": "12:00"}
    assert sent[1]["action"] == "updatePrice"
    assert sent[1]["price"] == 2700


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, text="<html>not json</html>"),
    httpx.Response(200, json={"status": "error", "message": "row not found"}),
    httpx.Response(200, json={"success": False}),
])
async def test_endpoint_errors_raise(response):
    def handler(request):
        return response

    with pytest.raises(SheetsError):
        await _client(handler).cancel_booking(make_booking())


async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(SheetsError):
        await _client(handler).fetch_bookings()


async def test_disabled_client():
    client = SheetsClient("", MSK)
    assert not client.enabled
    with pytest.raises(SheetsError):
        await client.fetch_bookings()
