"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeouts, headers y User-Agent para banco y servicio fiscal.
- Facilita testeo: se inyecta un `httpx.MockTransport` en lugar de la red.
"""

from __future__ import annotations

import httpx

from core.config import AppSettings


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    base_url: str = "",
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults seguros.

    Por qué un builder:
    - Centraliza timeouts/headers para que todas las integraciones se comporten igual.
    - Los reintentos NO viven aquí: los aplica `core.services.retry` por llamada.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


def decode_legacy_body(content: bytes, encoding: str) -> str:
    """Decodifica el cuerpo crudo (bytes) desde una codificación legacy.

    Importante: nunca partir de `response.text`; httpx adivina el charset y
    los nombres en cirílico quedan corrompidos sin vuelta atrás.
    """

    return content.decode(encoding, errors="strict")
