"""Integración con el servicio de recibos fiscales Checkbox."""

from adapters.checkbox.client import CheckboxClient

__all__ = ["CheckboxClient"]
