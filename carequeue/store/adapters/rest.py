import re
from typing import Any

import httpx
from loguru import logger

from carequeue.domain.exceptions import (
    BookingNotFoundError,
    PatientNotFoundError,
    RecordNotFoundError,
    StoreUnavailableError,
    StoreWriteError,
)
from carequeue.domain.models import BookingWithPatient, Patient

_BOOKING_SELECT = "*,patient:patients(*)"
_BOOKING_ORDER = "appointment_date.asc,appointment_time.asc"
_PATIENT_ORDER = "full_name.asc"

# PostgREST error code for "JSON object requested, multiple (or no) rows returned".
_NO_ROWS_CODE = "PGRST116"
_SINGLE_OBJECT = "application/vnd.pgrst.object+json"

_RESERVED = re.compile(r"[,()*\"\\]")

_NOT_FOUND: dict[str, type[RecordNotFoundError]] = {
    "bookings": BookingNotFoundError,
    "patients": PatientNotFoundError,
}


def _eq_params(filters: dict[str, str] | None) -> dict[str, str]:
    return {key: f"eq.{value}" for key, value in (filters or {}).items()}


def _error_message(resp: httpx.Response) -> tuple[str, str]:
    """Return ``(code, message)`` from a PostgREST error body, tolerating non-JSON bodies."""
    try:
        body: dict[str, Any] = resp.json()
    except ValueError:
        return "", resp.text or f"HTTP {resp.status_code}"
    if not isinstance(body, dict):
        return "", f"HTTP {resp.status_code}"
    code = str(body.get("code") or "")
    message = str(body.get("message") or body.get("error") or f"HTTP {resp.status_code}")
    return code, message


class PostgrestStoreClient:
    """Store client for a hosted Postgres exposed through PostgREST (e.g. Supabase)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str = "",
        timeout: float = 30.0,
    ) -> None:
        if not base_url:
            raise StoreUnavailableError("No store URL configured (set SUPABASE_URL)")
        if not api_key:
            raise StoreUnavailableError("No store API key configured (set SUPABASE_ANON_KEY)")
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.AsyncClient(timeout=timeout)

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        single: bool = False,
        record_id: str | None = None,
    ) -> Any:
        """Execute one PostgREST request and return the decoded body."""
        headers = dict(self._headers)
        if method in {"POST", "PATCH"}:
            headers["Prefer"] = "return=representation"
        if single:
            headers["Accept"] = _SINGLE_OBJECT

        try:
            resp = await self._client.request(
                method,
                f"{self._rest_url}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise StoreUnavailableError(f"Store request failed: {exc}") from exc

        if resp.is_success:
            if not resp.content:
                return None
            return resp.json()

        code, message = _error_message(resp)
        if code == _NO_ROWS_CODE and record_id is not None:
            raise _NOT_FOUND[table](record_id)
        if resp.status_code >= 500 or resp.status_code in {401, 403}:
            raise StoreUnavailableError(f"Store request failed: {message}")
        if method == "GET":
            raise StoreUnavailableError(f"Store query rejected: {message}")
        status = (json or {}).get("status")
        raise StoreWriteError(reason=message, record_id=record_id, status=status)

    async def select_bookings(
        self, filters: dict[str, str] | None = None
    ) -> list[BookingWithPatient]:
        params = {"select": _BOOKING_SELECT, "order": _BOOKING_ORDER, **_eq_params(filters)}
        rows: list[dict[str, Any]] = await self._request("GET", "bookings", params=params) or []
        return [BookingWithPatient.model_validate(row) for row in rows]

    async def insert_booking(self, values: dict[str, Any]) -> BookingWithPatient:
        row: dict[str, Any] = await self._request(
            "POST",
            "bookings",
            params={"select": _BOOKING_SELECT},
            json=values,
            single=True,
        )
        return BookingWithPatient.model_validate(row)

    async def update_booking(self, booking_id: str, values: dict[str, Any]) -> BookingWithPatient:
        row: dict[str, Any] = await self._request(
            "PATCH",
            "bookings",
            params={"select": _BOOKING_SELECT, "id": f"eq.{booking_id}"},
            json=values,
            single=True,
            record_id=booking_id,
        )
        return BookingWithPatient.model_validate(row)

    async def delete_booking(self, booking_id: str) -> None:
        await self._request(
            "DELETE", "bookings", params={"id": f"eq.{booking_id}"}, record_id=booking_id
        )

    async def select_patients(
        self,
        filters: dict[str, str] | None = None,
        search: str | None = None,
    ) -> list[Patient]:
        params = {"select": "*", "order": _PATIENT_ORDER, **_eq_params(filters)}
        if search:
            term = _RESERVED.sub(" ", search).strip()
            if term:
                params["or"] = f"(full_name.ilike.*{term}*,email.ilike.*{term}*)"
        rows: list[dict[str, Any]] = await self._request("GET", "patients", params=params) or []
        return [Patient.model_validate(row) for row in rows]

    async def insert_patient(self, values: dict[str, Any]) -> Patient:
        row: dict[str, Any] = await self._request(
            "POST", "patients", params={"select": "*"}, json=values, single=True
        )
        return Patient.model_validate(row)

    async def update_patient(self, patient_id: str, values: dict[str, Any]) -> Patient:
        row: dict[str, Any] = await self._request(
            "PATCH",
            "patients",
            params={"select": "*", "id": f"eq.{patient_id}"},
            json=values,
            single=True,
            record_id=patient_id,
        )
        return Patient.model_validate(row)

    async def delete_patient(self, patient_id: str) -> None:
        await self._request(
            "DELETE", "patients", params={"id": f"eq.{patient_id}"}, record_id=patient_id
        )

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "patients", params={"select": "id", "limit": "1"})
            return True
        except Exception as exc:
            logger.warning("Store health check failed: {}", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Store client closed")
