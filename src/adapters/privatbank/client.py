"""Cliente de extractos bancarios (PrivatBank AutoClient).

Flujo:
1. Autenticación estática por headers (`Id` + `Token`).
2. Paginación estrictamente secuencial por cursor (`followId`): la página n+1
   nunca se pide antes de conocer el cursor de la página n.
3. Cada cuerpo se decodifica desde cp1251 *sobre los bytes crudos* antes de
   parsear JSON.
4. Se filtran créditos entrantes y se normalizan a `CanonicalPayment`.

Cada request pasa por el rate limiter (por merchant) y por el ejecutor de
reintentos.
"""

from __future__ import annotations

import asyncio
import json
from datetime import date
from typing import AsyncIterator, Awaitable, Callable
from zoneinfo import ZoneInfo

import httpx
from pydantic import ValidationError

from adapters.http_client import build_async_client, decode_legacy_body
from adapters.privatbank.models import BankStatementPage, BankTransaction
from adapters.privatbank.parsing import format_bank_date, is_incoming_credit, to_canonical_payment
from core.config import AppSettings
from core.domain.errors import AuthError, ProtocolError, ServiceUnavailable
from core.domain.models import CanonicalPayment
from core.logging import get_logger
from core.services.rate_limiter import FixedWindowRateLimiter
from core.services.retry import RetryPolicy, is_retryable_status, with_retry

logger = get_logger(__name__)

_TRANSACTIONS_PATH = "/statements/transactions"


class PrivatBankClient:
    """Implementa `core.interfaces.clients.BankStatementSource`."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: FixedWindowRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or AppSettings()
        self._retry_policy = retry_policy or self._settings.retry_policy()
        self._rate_limiter = rate_limiter
        self._transport = transport
        self._sleep = sleep
        self._tz = ZoneInfo(self._settings.bank_timezone)

    async def fetch_payments(
        self,
        *,
        merchant_id: str,
        token: str,
        start_date: date,
        end_date: date,
    ) -> list[CanonicalPayment]:
        """Todos los créditos entrantes del rango, ya canonicalizados."""

        transactions = await self.fetch_transactions(
            merchant_id=merchant_id,
            token=token,
            start_date=start_date,
            end_date=end_date,
        )
        incoming = [tx for tx in transactions if is_incoming_credit(tx)]
        payments: list[CanonicalPayment] = []
        for tx in incoming:
            try:
                payments.append(to_canonical_payment(tx, self._tz))
            except ValidationError as exc:
                raise ProtocolError(
                    "Bank transaction could not be canonicalized",
                    {"transaction_id": tx.id, "errors": exc.error_count()},
                ) from exc

        logger.info(
            "bank_payments_fetched",
            merchant_id=merchant_id,
            transactions=len(transactions),
            incoming=len(payments),
        )
        return payments

    async def fetch_transactions(
        self,
        *,
        merchant_id: str,
        token: str,
        start_date: date,
        end_date: date,
    ) -> list[BankTransaction]:
        transactions: list[BankTransaction] = []
        async for page in self.iter_pages(
            merchant_id=merchant_id,
            token=token,
            start_date=start_date,
            end_date=end_date,
        ):
            transactions.extend(page.transactions)
        return transactions

    async def iter_pages(
        self,
        *,
        merchant_id: str,
        token: str,
        start_date: date,
        end_date: date,
    ) -> AsyncIterator[BankStatementPage]:
        start = format_bank_date(start_date)
        end = format_bank_date(end_date)
        headers = {
            "Id": merchant_id,
            "Token": token,
            "startDate": start,
            "endDate": end,
            "limit": str(self._settings.privatbank_page_limit),
        }
        max_pages = self._settings.privatbank_max_pages

        async with build_async_client(
            self._settings,
            extra_headers=headers,
            transport=self._transport,
            base_url=self._settings.privatbank_base_url,
        ) as client:
            cursor: str | None = None
            page_number = 0
            while True:
                await self._acquire_slot(merchant_id)
                page_number += 1
                page = await self._fetch_page(
                    client,
                    start=start,
                    cursor=cursor,
                    merchant_id=merchant_id,
                    page_number=page_number,
                )
                yield page

                if not page.exist_next_page:
                    return
                if not page.next_page_id:
                    # Sin cursor no hay forma de continuar; las páginas ya leídas se conservan.
                    logger.warning(
                        "bank_pagination_cursor_missing",
                        merchant_id=merchant_id,
                        page=page_number,
                    )
                    return
                if page_number >= max_pages:
                    logger.warning(
                        "bank_pagination_ceiling_reached",
                        merchant_id=merchant_id,
                        max_pages=max_pages,
                        next_page_id=page.next_page_id,
                    )
                    return
                cursor = page.next_page_id

    async def _acquire_slot(self, merchant_id: str) -> None:
        if self._rate_limiter is None:
            return
        identifier = f"privatbank:{merchant_id}"
        while True:
            decision = self._rate_limiter.check(
                identifier,
                self._settings.external_rate_limit_window_ms,
                self._settings.external_rate_limit_max_requests,
            )
            if decision.allowed:
                return
            wait = max(0.0, decision.reset_at - self._rate_limiter.now()) + 0.001
            logger.info("bank_rate_limited", merchant_id=merchant_id, wait_seconds=round(wait, 3))
            await self._sleep(wait)

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        *,
        start: str,
        cursor: str | None,
        merchant_id: str,
        page_number: int,
    ) -> BankStatementPage:
        params = {"startDate": start}
        if cursor:
            params["followId"] = cursor

        async def _get() -> httpx.Response:
            response = await client.get(_TRANSACTIONS_PATH, params=params)
            if response.is_error:
                logger.warning(
                    "bank_http_error",
                    merchant_id=merchant_id,
                    page=page_number,
                    status_code=response.status_code,
                    body=self._decode(response.content, strict=False)[:500],
                )
                response.raise_for_status()
            return response

        try:
            response = await with_retry(
                _get,
                self._retry_policy,
                sleep=self._sleep,
                operation_name="privatbank.statements",
            )
        except httpx.HTTPStatusError as exc:
            raise _translate_status(exc, merchant_id=merchant_id) from exc
        except httpx.TransportError as exc:
            raise ServiceUnavailable(
                "Bank statement API unreachable",
                {"merchant_id": merchant_id, "error": type(exc).__name__},
            ) from exc

        try:
            text = self._decode(response.content)
            data = json.loads(text)
            page = BankStatementPage.model_validate(data)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            raise ProtocolError(
                "Unexpected bank statement response",
                {"merchant_id": merchant_id, "page": page_number, "error": type(exc).__name__},
            ) from exc

        if page.status != "SUCCESS":
            raise ProtocolError(
                f"Bank statement API returned status: {page.status}",
                {"merchant_id": merchant_id, "page": page_number},
            )

        logger.debug(
            "bank_page_fetched",
            merchant_id=merchant_id,
            page=page_number,
            transactions=len(page.transactions),
            exist_next_page=page.exist_next_page,
        )
        return page

    def _decode(self, content: bytes, *, strict: bool = True) -> str:
        if strict:
            return decode_legacy_body(content, self._settings.privatbank_encoding)
        return content.decode(self._settings.privatbank_encoding, errors="replace")


def _translate_status(exc: httpx.HTTPStatusError, *, merchant_id: str) -> Exception:
    status = exc.response.status_code
    details = {"merchant_id": merchant_id, "status_code": status}
    if status in (401, 403):
        return AuthError("Bank rejected the API credentials", details)
    if is_retryable_status(status):
        return ServiceUnavailable("Bank statement API unavailable", details)
    return ProtocolError(f"Bank statement API error: {status}", details)
