"""Contratos del Core hacia el banco y el servicio fiscal.

Por qué:
- El pipeline de pagos depende de Protocols, no de PrivatBank/Checkbox.
- Los tests inyectan fakes que cumplen la misma forma.
"""
