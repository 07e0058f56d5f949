"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (banco/fiscal) y servicios de resiliencia lean
  config de forma consistente.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.services.retry import RetryPolicy


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "paybridge"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "paybridge"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "paybridge"
    return Path.home() / ".config" / "paybridge"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _read_env_file(env_path: Path) -> dict[str, str]:
    """Pares KEY=VALUE de un .env; ignora comentarios y `export `."""

    values: dict[str, str] = {}
    if not env_path.exists():
        return values
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip().removeprefix("export ").strip()
        if entry.startswith("#"):
            continue
        name, sep, raw = entry.partition("=")
        if sep and name.strip():
            values[name.strip()] = raw.strip().strip("\"'")
    return values


def write_user_env_vars(values: dict[str, str], env_path: Path | None = None) -> Path:
    """Fusiona `values` en el .env del usuario (claves nuevas al final).

    Importante: el archivo puede contener la clave del vault; se crea con
    permisos 0600 donde el sistema lo permite.
    """

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    merged = _read_env_file(env_path)
    merged.update({name: value for name, value in values.items() if value is not None})

    body = "# paybridge user config (.env)\n" + "".join(f"{name}={value}\n" for name, value in merged.items())
    env_path.write_text(body, encoding="utf-8")
    if not sys.platform.startswith("win"):
        env_path.chmod(0o600)
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYBRIDGE_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    encryption_key: SecretStr | None = Field(
        default=None,
        description="Clave AES-256 del vault de credenciales (exactamente 32 bytes).",
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout por request (segundos).",
    )
    user_agent: str = Field(
        default="paybridge/0.1",
        min_length=1,
        description="User-Agent para las APIs externas.",
    )

    # Banco (PrivatBank AutoClient)
    privatbank_base_url: str = Field(
        default="https://acp.privatbank.ua/api",
        min_length=8,
        description="Base URL de la API de extractos bancarios.",
    )
    privatbank_encoding: str = Field(
        default="cp1251",
        min_length=1,
        description="Codificación legacy de los cuerpos de respuesta del banco.",
    )
    privatbank_page_limit: int = Field(
        default=100,
        ge=1,
        le=500,
        description="Transacciones por página solicitadas al banco.",
    )
    privatbank_max_pages: int = Field(
        default=100,
        ge=1,
        description="Techo de seguridad de páginas por consulta.",
    )
    bank_timezone: str = Field(
        default="Europe/Kyiv",
        min_length=1,
        description="Zona horaria de las fechas sin offset que devuelve el banco.",
    )

    # Fiscal (Checkbox)
    checkbox_api_base: str = Field(
        default="https://api.checkbox.ua/api/v1",
        min_length=8,
        description="Host de autenticación y turnos.",
    )
    checkbox_receipt_api_base: str = Field(
        default="https://api.checkbox.in.ua/api/v1",
        min_length=8,
        description="Host de emisión de recibos (puede diferir del de turnos).",
    )

    # Resiliencia
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_max_delay_ms: int = Field(default=10000, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    breaker_threshold: int = Field(default=5, ge=1)
    breaker_timeout_ms: int = Field(default=60000, ge=0)
    external_rate_limit_window_ms: int = Field(
        default=60000,
        gt=0,
        description="Ventana del rate limiter para llamadas al banco.",
    )
    external_rate_limit_max_requests: int = Field(
        default=10,
        ge=1,
        description="Máximo de llamadas al banco por ventana y merchant.",
    )

    log_level: str = Field(default="INFO", description="Nivel de logging.")
    log_json: bool = Field(default=False, description="Render JSON (producción) vs consola.")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay_ms=self.retry_base_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            backoff_multiplier=self.retry_backoff_multiplier,
        )

    def encryption_key_bytes(self) -> bytes | None:
        if self.encryption_key is None:
            return None
        return self.encryption_key.get_secret_value().encode("utf-8")
