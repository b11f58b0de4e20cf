"""Async HTTP client for the spreadsheet web app that stores bookings."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx
import pytz

from barbershop.booking import Booking

logger = logging.getLogger(__name__)


class SheetsError(RuntimeError):
    pass


def _rows(payload: Any) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("bookings", "data", "rows", "items"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
        return []
    raise SheetsError(f"unexpected response shape: {type(payload).__name__}")


def _check_result(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        return {"result": payload}
    status = str(payload.get("status") or payload.get("result") or "").lower()
    if status == "error" or payload.get("ok") is False or payload.get("success") is False:
        raise SheetsError(str(payload.get("message") or payload.get("error") or "endpoint returned an error"))
    return payload


class SheetsClient:
    def __init__(
        self,
        url: str,
        tz: pytz.BaseTzInfo,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = (url or "").strip()
        self.tz = tz
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def _client(self) -> httpx.AsyncClient:
        # Apps Script отвечает 302 на googleusercontent.com
        return httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _request(self, method: str, **kwargs) -> Any:
        if not self.enabled:
            raise SheetsError("BOOKINGS_API_URL is not configured")
        try:
            async with self._client() as cli:
                resp = await cli.request(method, self.url, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            raise SheetsError(f"HTTP {exc.response.status_code} from bookings endpoint") from exc
        except httpx.HTTPError as exc:
            raise SheetsError(f"bookings endpoint unreachable: {exc!r}") from exc
        except ValueError as exc:
            raise SheetsError("bookings endpoint returned non-JSON body") from exc

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return _check_result(await self._request("POST", json=payload))

    async def fetch_bookings(self) -> List[Booking]:
        payload = await self._request("GET", params={"action": "list"})
        out: List[Booking] = []
        for row in _rows(payload):
            if not isinstance(row, dict):
                continue
            try:
                out.append(Booking.from_record(row, self.tz))
            except ValueError:
                logger.debug("Skipping malformed booking row: %r", row)
        return out

    async def create_booking(self, booking: Booking) -> Dict[str, Any]:
        return await self._post({"action": "create", **booking.to_payload()})

    async def cancel_booking(self, booking: Booking) -> Dict[str, Any]:
        return await self._post({
            "action": "cancel",
            "id": booking.id,
            "barberId": booking.barber_id,
            "date": booking.date,
            "timeSlot": booking.time_slot,
        })

    async def update_price(self, booking: Booking, price: int) -> Dict[str, Any]:
        return await self._post({
            "action": "updatePrice",
            "id": booking.id,
            "barberId": booking.barber_id,
            "date": booking.date,
            "timeSlot": booking.time_slot,
            "price": int(price),
        })
