"""Currency helpers for Uruguayan pesos and UR (Unidad Reajustable)."""

from typing import Optional

from core.settings import get_settings


def _group_es(value: float, decimals: int) -> str:
    # es-UY: "." groups thousands, "," separates decimals
    text = f"{value:,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_amount(value: float) -> str:
    """Format a number the way es-UY locales print it, keeping up to two decimals.

    >>> format_amount(1234.5)
    '1.234,5'
    >>> format_amount(4000)
    '4.000'
    """
    text = _group_es(round(value, 2), 2)
    if "," in text:
        text = text.rstrip("0").rstrip(",")
    return text


def format_pesos(amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    return f"${_group_es(amount, 0)}"


def format_ur(amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    return f"{_group_es(amount, 2)} UR"


def convert_ur_to_pesos(ur: float, cotizacion: Optional[float] = None) -> float:
    if cotizacion is None:
        cotizacion = get_settings().cotizacion_ur
    return ur * cotizacion


def convert_pesos_to_ur(pesos: float, cotizacion: Optional[float] = None) -> float:
    if cotizacion is None:
        cotizacion = get_settings().cotizacion_ur
    if cotizacion == 0:
        return 0.0
    return pesos / cotizacion


def format_ur_with_pesos(ur_amount: Optional[float], cotizacion: Optional[float] = None) -> str:
    if ur_amount is None:
        return "-"
    return f"{format_ur(ur_amount)} ({format_pesos(convert_ur_to_pesos(ur_amount, cotizacion))})"
