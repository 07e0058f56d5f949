"""Esquema de cable de la API de extractos (PrivatBank AutoClient).

Idea:
- Los nombres de campo del banco (mayúsculas) cambian entre revisiones; todo
  es opcional y lo desconocido se ignora. La canonicalización decide defaults.
- Algunos campos llegan como número en unas versiones y como string en otras:
  se normalizan a `str` antes de validar.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


def _as_optional_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class BankTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str | None = Field(default=None, alias="ID")
    technical_transaction_id: str | None = Field(default=None, alias="TECHNICAL_TRANSACTION_ID")
    document_number: str | None = Field(default=None, alias="NUM_DOC")
    document_type: str | None = Field(default=None, alias="DOC_TYP")
    reference: str | None = Field(default=None, alias="REF")

    date_client: str | None = Field(default=None, alias="DAT_KL")
    date_processed: str | None = Field(default=None, alias="DAT_OD")
    time_processed: str | None = Field(default=None, alias="TIM_P")
    datetime_processed: str | None = Field(default=None, alias="DATE_TIME_DAT_OD_TIM_P")

    my_account: str | None = Field(default=None, alias="AUT_MY_ACC")
    my_tax_id: str | None = Field(default=None, alias="AUT_MY_CRF")

    counterparty_tax_id: str | None = Field(default=None, alias="AUT_CNTR_CRF")
    counterparty_bank_code: str | None = Field(default=None, alias="AUT_CNTR_MFO")
    counterparty_account: str | None = Field(default=None, alias="AUT_CNTR_ACC")
    counterparty_name: str | None = Field(default=None, alias="AUT_CNTR_NAM")
    counterparty_bank_name: str | None = Field(default=None, alias="AUT_CNTR_MFO_NAME")

    currency: str | None = Field(default=None, alias="CCY")
    amount: str | None = Field(default=None, alias="SUM", description="Importe (débito).")
    amount_credit: str | None = Field(default=None, alias="SUM_E", description="Importe (crédito).")
    purpose: str | None = Field(default=None, alias="OSND")
    direction: str | None = Field(default=None, alias="TRANTYPE", description="C=crédito, D=débito.")
    real_flag: str | None = Field(default=None, alias="FL_REAL")
    income_flag: str | None = Field(default=None, alias="PR_PR")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_scalars(cls, value: Any) -> Any:
        return _as_optional_str(value)


class BankStatementPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str = Field(..., description="SUCCESS | ERROR")
    type: str | None = None
    exist_next_page: bool = False
    next_page_id: str | None = None
    transactions: list[BankTransaction] = Field(default_factory=list)

    @field_validator("next_page_id", mode="before")
    @classmethod
    def _cursor_as_str(cls, value: Any) -> Any:
        if value == "":
            return None
        return _as_optional_str(value)

    @field_validator("transactions", mode="before")
    @classmethod
    def _null_transactions(cls, value: Any) -> Any:
        return [] if value is None else value
