"""Respuestas de cable de la API Checkbox que no son modelos de dominio."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class SignInResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    token_type: str = Field(default="bearer")
