"""Cliente de recibos fiscales (Checkbox).

Flujo de `issue_receipt`:
1. Sign-in (login + password) → access token. Se re-autentica en cada emisión.
2. Consulta del turno actual (404 = no hay turno).
3. Apertura de turno si falta o no está OPENED.
4. Emisión del recibo en el host de recibos (dominio distinto al de auth).

Cada paso va envuelto como `breaker.call(with_retry(request))`: el breaker
cuenta un fallo por paso (ya reintentado), nunca por intento individual.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from adapters.checkbox.models import SignInResponse
from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.errors import (
    AuthError,
    PaybridgeError,
    ProtocolError,
    ReceiptError,
    ServiceUnavailable,
    ShiftError,
)
from core.domain.models import IssuedReceipt, ReceiptRequest, ReceiptStatus, Shift
from core.logging import get_logger
from core.services.circuit_breaker import CircuitBreaker
from core.services.retry import RetryPolicy, is_retryable_status, with_retry

logger = get_logger(__name__)

ErrorFactory = Callable[[str, dict[str, Any]], PaybridgeError]


class CheckboxClient:
    """Implementa `core.interfaces.clients.FiscalReceiptIssuer`."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or AppSettings()
        # Solo cuentan fallos del servicio; rechazos 4xx del llamador no abren el circuito.
        self.breaker = breaker or CircuitBreaker(
            threshold=self._settings.breaker_threshold,
            timeout_ms=self._settings.breaker_timeout_ms,
            name="checkbox",
            excluded=(AuthError, ShiftError, ReceiptError),
        )
        self._retry_policy = retry_policy or self._settings.retry_policy()
        self._transport = transport
        self._sleep = sleep
        self._api = self._settings.checkbox_api_base.rstrip("/")
        self._receipt_api = self._settings.checkbox_receipt_api_base.rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        # Sin base_url: auth/turnos y recibos viven en hosts distintos.
        return build_async_client(self._settings, transport=self._transport)

    async def issue_receipt(
        self,
        login: str,
        password: str,
        license_key: str,
        request: ReceiptRequest,
    ) -> IssuedReceipt:
        if request.id is None:
            request = request.model_copy(update={"id": str(uuid.uuid4())})

        async with self._client() as client:
            token = await self.sign_in(client, login, password)
            shift = await self.get_current_shift(client, token)
            if shift is None or not shift.is_open:
                shift = await self.open_shift(client, token, license_key)
            receipt = await self.create_receipt(client, token, license_key, request)

        logger.info(
            "receipt_issued",
            receipt_id=receipt.id,
            status=receipt.status.value,
            shift_id=shift.id,
            fiscal_code=receipt.fiscal_code,
        )
        return receipt

    async def close_shift(self, login: str, password: str, license_key: str) -> Shift | None:
        """Cierre de fin de día. Devuelve None si no había turno abierto."""

        async with self._client() as client:
            token = await self.sign_in(client, login, password)
            shift = await self.get_current_shift(client, token)
            if shift is None or not shift.is_open:
                logger.info("shift_close_skipped", reason="no_open_shift")
                return None

            async def _send() -> httpx.Response:
                return await self._send(
                    client,
                    "POST",
                    f"{self._api}/shifts/close",
                    headers=_auth_headers(token, license_key),
                    json={},
                )

            response = await self._guarded("close_shift", _send, ShiftError)
            closed = self._parse(response, Shift, ShiftError, step="close_shift")

        logger.info("shift_closed", shift_id=closed.id, status=closed.status.value)
        return closed

    async def sign_in(self, client: httpx.AsyncClient, login: str, password: str) -> str:
        async def _send() -> httpx.Response:
            return await self._send(
                client,
                "POST",
                f"{self._api}/cashier/signin",
                json={"login": login, "password": password},
            )

        response = await self._guarded("sign_in", _send, AuthError)
        data = self._parse(response, SignInResponse, ProtocolError, step="sign_in")
        logger.debug("checkbox_signed_in", login=login)
        return data.access_token

    async def get_current_shift(self, client: httpx.AsyncClient, token: str) -> Shift | None:
        async def _send() -> httpx.Response:
            return await self._send(
                client,
                "GET",
                f"{self._api}/cashier/shift",
                headers={"Authorization": f"Bearer {token}"},
                allow_not_found=True,
            )

        response = await self._guarded("get_shift", _send, ShiftError)
        if response.status_code == 404:
            logger.debug("checkbox_no_active_shift")
            return None
        return self._parse(response, Shift, ShiftError, step="get_shift")

    async def open_shift(self, client: httpx.AsyncClient, token: str, license_key: str) -> Shift:
        async def _send() -> httpx.Response:
            return await self._send(
                client,
                "POST",
                f"{self._api}/shifts",
                headers=_auth_headers(token, license_key),
                json={},
            )

        response = await self._guarded("open_shift", _send, ShiftError)
        shift = self._parse(response, Shift, ShiftError, step="open_shift")
        logger.info("shift_opened", shift_id=shift.id, status=shift.status.value)
        return shift

    async def create_receipt(
        self,
        client: httpx.AsyncClient,
        token: str,
        license_key: str,
        request: ReceiptRequest,
    ) -> IssuedReceipt:
        payload = request.to_payload()

        async def _send() -> httpx.Response:
            return await self._send(
                client,
                "POST",
                f"{self._receipt_api}/receipts/sell",
                headers=_auth_headers(token, license_key),
                json=payload,
            )

        response = await self._guarded("create_receipt", _send, ReceiptError)
        receipt = self._parse(response, IssuedReceipt, ProtocolError, step="create_receipt")
        if receipt.status is ReceiptStatus.ERROR:
            raise ReceiptError(
                "Fiscal service returned receipt status ERROR",
                {"receipt_id": receipt.id},
            )
        return receipt

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        response = await client.request(method, url, headers=headers, json=json)
        if response.is_error and not (allow_not_found and response.status_code == 404):
            logger.warning(
                "checkbox_http_error",
                method=method,
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            response.raise_for_status()
        return response

    async def _guarded(
        self,
        step: str,
        send: Callable[[], Awaitable[httpx.Response]],
        rejected: ErrorFactory,
    ) -> httpx.Response:
        async def _attempt() -> httpx.Response:
            try:
                return await with_retry(
                    send,
                    self._retry_policy,
                    sleep=self._sleep,
                    operation_name=f"checkbox.{step}",
                )
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                details = {"step": step, "status_code": status}
                if is_retryable_status(status):
                    raise ServiceUnavailable("Fiscal service unavailable", details) from exc
                raise rejected(f"Fiscal service rejected {step}: {status}", details) from exc
            except httpx.TransportError as exc:
                raise ServiceUnavailable(
                    "Fiscal service unreachable",
                    {"step": step, "error": type(exc).__name__},
                ) from exc

        return await self.breaker.call(_attempt)

    @staticmethod
    def _parse(response: httpx.Response, model: type, error: ErrorFactory, *, step: str) -> Any:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise error(
                f"Unexpected fiscal service response in {step}",
                {"step": step, "error": type(exc).__name__},
            ) from exc


def _auth_headers(token: str, license_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", "X-License-Key": license_key}
