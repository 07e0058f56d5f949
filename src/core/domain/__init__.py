"""Modelos, dinero y errores del dominio de pagos.

Por qué:
- Aquí viven pagos canónicos, recibos, turnos y secretos cifrados (Pydantic v2).
- El dominio no conoce httpx, cryptography ni la CLI: solo conceptos del negocio.
"""
