"""Clinic data API client with bearer authentication and transport retries."""

import asyncio
from decimal import Decimal
from typing import Any

import httpx
import structlog

from clinic_reports.config import get_settings
from clinic_reports.normalizer import (
    build_doctor_fee_records,
    normalize_expense,
    normalize_field_trip_sale,
    normalize_salary,
    normalize_sale,
    normalize_treatment,
)
from clinic_reports.records import (
    ZERO,
    DoctorFeeRecord,
    ExpenseRecord,
    FieldTripSaleRecord,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)

logger = structlog.get_logger(__name__)

ENVELOPE_KEYS = ("data", "items")


class ClinicAPIError(Exception):
    """Base exception for clinic API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(ClinicAPIError):
    """The bearer credential was rejected."""

    pass


class ClinicAPIClient:
    """Async client for the clinic data API.

    Every ``fetch_*_report`` method returns normalized records and raises
    :class:`ClinicAPIError` when the source cannot be read.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        default_sitting_fee: Decimal = ZERO,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.clinic_api_url).rstrip("/")
        self._token = token or settings.clinic_api_token.get_secret_value()
        self._timeout = timeout if timeout is not None else settings.clinic_api_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.clinic_api_max_retries
        )
        self._default_sitting_fee = default_sitting_fee
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ClinicAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._token}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an authenticated API request with retry logic."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning(
                    "clinic_api_request_retry",
                    path=path,
                    attempt=retry_count + 1,
                    error=str(e),
                )
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, retry_count + 1)
            raise ClinicAPIError(f"Request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Clinic API rejected the credential",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            raise ClinicAPIError(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        if not response.content:
            return []
        try:
            return response.json()
        except ValueError as e:
            raise ClinicAPIError(
                f"Invalid JSON from {path}",
                status_code=response.status_code,
                details={"raw": response.text[:500]},
            ) from e

    async def get_list(
        self,
        path: str,
        keys: tuple[str, ...] = (),
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """GET a collection.

        The body may be a bare list or an object wrapping the list under one of
        ``keys`` (e.g. ``{"expenses": [...]}``), tried in order before the generic
        ``data`` and ``items``. An object holding none of them raises
        :class:`ClinicAPIError`.
        """
        payload = await self._request("GET", path, params=params)
        if isinstance(payload, dict):
            key = next((k for k in (*keys, *ENVELOPE_KEYS) if k in payload), None)
            if key is None:
                raise ClinicAPIError(
                    f"Unexpected response shape from {path}",
                    details={"expected": [*keys, *ENVELOPE_KEYS], "keys": sorted(payload)},
                )
            payload = payload[key] if payload[key] is not None else []
        if not isinstance(payload, list):
            raise ClinicAPIError(f"Expected a list from {path}", details={"type": type(payload).__name__})
        return [item for item in payload if isinstance(item, dict)]

    # === Report sources ===

    async def fetch_treatment_report(self) -> list[TreatmentRecord]:
        raw = await self.get_list("/treatments", keys=("treatments",))
        logger.debug("treatments_fetched", count=len(raw))
        return [normalize_treatment(item) for item in raw]

    async def fetch_sales_report(self) -> list[SaleRecord]:
        """Fetch sales, one record per sold item."""
        raw = await self.get_list("/sales", keys=("sales",))
        records: list[SaleRecord] = []
        for item in raw:
            records.extend(normalize_sale(item))
        logger.debug("sales_fetched", sales=len(raw), items=len(records))
        return records

    async def fetch_field_trip_report(self) -> list[FieldTripSaleRecord]:
        raw = await self.get_list("/field-trip-sales", keys=("sales", "fieldTripSales"))
        logger.debug("field_trip_sales_fetched", count=len(raw))
        return [normalize_field_trip_sale(item) for item in raw]

    async def fetch_salary_report(self) -> list[SalaryRecord]:
        raw = await self.get_list("/salaries", keys=("salaries",))
        logger.debug("salaries_fetched", count=len(raw))
        return [normalize_salary(item) for item in raw]

    async def fetch_doctor_fee_report(self) -> list[DoctorFeeRecord]:
        """Combine treatments, sitting fees and sitting-fee settings per doctor/day."""
        treatments, sitting_fees, settings = await asyncio.gather(
            self.get_list("/treatments", keys=("treatments",)),
            self.get_list("/sitting-fees", keys=("sittingFees",)),
            self.get_list("/doctor-sitting-fee-settings", keys=("settings",)),
        )
        records = build_doctor_fee_records(
            treatments,
            sitting_fees,
            settings,
            default_sitting_fee=self._default_sitting_fee,
        )
        logger.debug(
            "doctor_fees_fetched",
            treatments=len(treatments),
            sitting_fees=len(sitting_fees),
            records=len(records),
        )
        return records

    async def fetch_expense_report(self) -> list[ExpenseRecord]:
        raw = await self.get_list("/expenses", keys=("expenses",))
        logger.debug("expenses_fetched", count=len(raw))
        return [normalize_expense(item) for item in raw]
