"""Human readable work order codes: OT-{YYYY}-{NNN}."""

from datetime import date, datetime
from typing import NamedTuple, Optional, Union

from core.settings import get_settings

YearLike = Union[int, date, datetime, str, None]


class ParsedCode(NamedTuple):
    prefix: str
    year: Optional[int]
    numero: int


def _resolve_year(year_or_date: YearLike) -> int:
    if isinstance(year_or_date, (date, datetime)):
        return year_or_date.year
    if isinstance(year_or_date, str):
        return datetime.fromisoformat(year_or_date).year
    if isinstance(year_or_date, int):
        return year_or_date
    return date.today().year


def format_ot_code(
    numero: int,
    year_or_date: YearLike = None,
    prefix: Optional[str] = None,
    include_year: bool = True,
    min_digits: Optional[int] = None,
    separator: str = "-",
) -> str:
    """
    >>> format_ot_code(1, 2024)
    'OT-2024-001'
    >>> format_ot_code(5, 2024, prefix="OBRA-A", include_year=False)
    'OBRA-A-005'
    """
    settings = get_settings()
    prefix = settings.ot_code_prefix if prefix is None else prefix
    min_digits = settings.ot_code_min_digits if min_digits is None else min_digits

    parts = [prefix]
    if include_year:
        parts.append(str(_resolve_year(year_or_date)))
    parts.append(format_ot_number(numero, min_digits))
    return separator.join(parts)


def parse_ot_code(code: str) -> Optional[ParsedCode]:
    parts = code.split("-")
    if len(parts) < 2:
        return None

    try:
        numero = int(parts[-1])
    except ValueError:
        return None

    year = None
    if len(parts) >= 3:
        try:
            candidate = int(parts[1])
        except ValueError:
            candidate = None
        if candidate is not None and 2000 <= candidate <= 2100:
            year = candidate

    return ParsedCode(prefix=parts[0], year=year, numero=numero)


def get_ot_display_code(numero: int, created_at: YearLike = None) -> str:
    return format_ot_code(numero, created_at)


def format_ot_number(numero: int, min_digits: int = 3) -> str:
    return str(numero).zfill(min_digits)
