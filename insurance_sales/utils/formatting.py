"""Spanish (Paraguay) formatting helpers for amounts, dates and text"""

import re
import unicodedata
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[date, datetime, str, None]

SPANISH_MONTHS = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

_UNITS = ["", "UN", "DOS", "TRES", "CUATRO", "CINCO", "SEIS", "SIETE", "OCHO", "NUEVE"]
_TEENS = [
    "DIEZ", "ONCE", "DOCE", "TRECE", "CATORCE", "QUINCE",
    "DIECISÉIS", "DIECISIETE", "DIECIOCHO", "DIECINUEVE",
]
_TENS = ["", "DIEZ", "VEINTE", "TREINTA", "CUARENTA", "CINCUENTA", "SESENTA", "SETENTA", "OCHENTA", "NOVENTA"]
_HUNDREDS = [
    "", "CIENTO", "DOSCIENTOS", "TRESCIENTOS", "CUATROCIENTOS", "QUINIENTOS",
    "SEISCIENTOS", "SETECIENTOS", "OCHOCIENTOS", "NOVECIENTOS",
]


def format_currency(amount: Union[int, float, str, None], symbol: str = "Gs.") -> str:
    """Format an amount as guaraníes: no decimals, dot as thousands separator"""
    if amount is None or amount == "":
        amount = 0
    try:
        num = float(str(amount).replace(",", ""))
        return f"{symbol} {num:,.0f}".replace(",", ".")
    except (ValueError, TypeError):
        return str(amount)


def number_to_words(n: Union[int, float]) -> str:
    """Spell an integer amount in upper-case Spanish (e.g. 'UN MILLÓN QUINIENTOS MIL')"""
    n = abs(int(n))
    if n == 0:
        return "CERO"
    return _convert(n)


def _convert(num: int) -> str:
    if num == 0:
        return ""
    if num == 100:
        return "CIEN"
    if num < 10:
        return _UNITS[num]
    if num < 20:
        return _TEENS[num - 10]
    if num < 30:
        return "VEINTE" if num == 20 else "VEINTI" + _UNITS[num - 20]
    if num < 100:
        tens, units = divmod(num, 10)
        return _TENS[tens] if units == 0 else f"{_TENS[tens]} Y {_UNITS[units]}"
    if num < 1000:
        hundreds, rest = divmod(num, 100)
        return _HUNDREDS[hundreds] if rest == 0 else f"{_HUNDREDS[hundreds]} {_convert(rest)}"
    if num < 1_000_000:
        thousands, rest = divmod(num, 1000)
        prefix = "MIL" if thousands == 1 else f"{_convert(thousands)} MIL"
        return prefix if rest == 0 else f"{prefix} {_convert(rest)}"
    if num < 1_000_000_000:
        millions, rest = divmod(num, 1_000_000)
        prefix = "UN MILLÓN" if millions == 1 else f"{_convert(millions)} MILLONES"
        return prefix if rest == 0 else f"{prefix} {_convert(rest)}"
    return str(num)


def amount_in_words(amount: Union[int, float, None]) -> str:
    """Amount spelled out with the currency name"""
    return f"{number_to_words(amount or 0)} GUARANÍES"


def parse_date(value: DateLike) -> Optional[date]:
    """Coerce ISO strings, dates and datetimes into a date; None when unparseable"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value: DateLike) -> str:
    """dd/MM/yyyy"""
    d = parse_date(value)
    return d.strftime("%d/%m/%Y") if d else ""


def format_long_date(value: DateLike) -> str:
    """'5 de marzo de 2024'"""
    d = parse_date(value)
    if d is None:
        return ""
    return f"{d.day} de {SPANISH_MONTHS[d.month - 1]} de {d.year}"


def first_day_of_month(value: Union[date, datetime]) -> date:
    """First calendar day of the month containing value"""
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def calculate_age(birth_date: DateLike, reference: date) -> Optional[int]:
    """Age in whole years at the reference date"""
    born = parse_date(birth_date)
    if born is None:
        return None
    age = reference.year - born.year
    if (reference.month, reference.day) < (born.month, born.day):
        age -= 1
    return age


def yes_no(value: Optional[bool]) -> str:
    """Render a boolean the way templates expect it"""
    if value is None:
        return ""
    return "Sí" if value else "No"


def fold_text(text: str) -> str:
    """Lowercase and strip diacritics for tolerant substring matching"""
    text = unicodedata.normalize("NFD", text.lower())
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Mn")
    return re.sub(r"\s+", " ", text).strip()
