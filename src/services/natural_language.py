"""Deterministic natural-language shortcuts.

Each ``detect_*`` function looks at a message and either returns an
:class:`Intent` carrying the ready-to-send reply or ``None``. They are pure
(apart from randomness for the games) and never raise on ordinary input, so
the router can try them one after the other before paying for an LLM call.

Numbers are rendered the French way: ``6 559,57``.
"""

from __future__ import annotations

import random
import re
import secrets
import string
from datetime import date, datetime
from typing import List, Optional

from src.models.intent import Intent
from src.services.time_service import DEFAULT_TIMEZONE, format_date_fr, format_time, now_local


EUR_TO_XOF = 655.957
USD_TO_XOF = 600.0
KM_TO_MILES = 0.621371
MILES_TO_KM = 1.60934
VAT_RATE = 0.18

_NUMBER = r"(\d+(?:[.,]\d+)?)"


def parse_number(raw: str) -> float:
    return float(raw.replace(",", "."))


def format_number(value: float, max_decimals: int = 3) -> str:
    """Format ``value`` with a space thousands separator and a decimal comma.

    Examples:
        >>> format_number(20.0)
        '20'
        >>> format_number(6559.57)
        '6 559,57'
    """

    rounded = round(value, max_decimals)
    if rounded == int(rounded):
        return f"{int(rounded):,}".replace(",", " ")
    text = f"{rounded:,.{max_decimals}f}".rstrip("0").rstrip(".")
    return text.replace(",", " ").replace(".", ",")


def format_fixed(value: float, decimals: int) -> str:
    return f"{value:.{decimals}f}".replace(".", ",")


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

_EUR_TO_CFA_RE = re.compile(rf"{_NUMBER}\s*(?:euros?|eur|€)\s*(?:en|to|vers?)\s*(?:cfa|fcfa|xof)", re.I)
_USD_TO_CFA_RE = re.compile(rf"{_NUMBER}\s*(?:dollars?|usd|\$)\s*(?:en|to|vers?)\s*(?:cfa|fcfa|xof)", re.I)
_CFA_TO_EUR_RE = re.compile(rf"{_NUMBER}\s*(?:cfa|fcfa|xof)\s*(?:en|to|vers?)\s*(?:euros?|eur|€)", re.I)
_TEMPERATURE_RE = re.compile(rf"{_NUMBER}\s*°?\s*([cf])\s*(?:en|to|vers?)\s*°?\s*([cf])\b", re.I)
_KM_TO_MILES_RE = re.compile(rf"{_NUMBER}\s*(?:km|kilom[èe]tres?)\s*(?:en|to|vers?)\s*miles?", re.I)
_MILES_TO_KM_RE = re.compile(rf"{_NUMBER}\s*miles?\s*(?:en|to|vers?)\s*(?:km|kilom[èe]tres?)", re.I)


def _conversion(formatted: str) -> Intent:
    return Intent(kind="conversion", reply=f"💱 {formatted}", value=formatted)


def detect_conversion(text: str) -> Optional[Intent]:
    """Currency (EUR/USD/CFA), temperature (°C/°F) and distance (km/miles)."""

    match = _EUR_TO_CFA_RE.search(text)
    if match:
        amount = parse_number(match.group(1))
        return _conversion(f"{format_number(amount)} € = {format_number(amount * EUR_TO_XOF)} CFA")

    match = _USD_TO_CFA_RE.search(text)
    if match:
        amount = parse_number(match.group(1))
        return _conversion(f"{format_number(amount)} $ = {format_number(amount * USD_TO_XOF)} CFA")

    match = _CFA_TO_EUR_RE.search(text)
    if match:
        amount = parse_number(match.group(1))
        return _conversion(f"{format_number(amount)} CFA = {format_fixed(amount / EUR_TO_XOF, 2)} €")

    match = _TEMPERATURE_RE.search(text)
    if match:
        value = parse_number(match.group(1))
        source, target = match.group(2).upper(), match.group(3).upper()
        if source == "C" and target == "F":
            result = value * 9 / 5 + 32
        elif source == "F" and target == "C":
            result = (value - 32) * 5 / 9
        else:
            result = value
        return _conversion(f"{format_number(value)}°{source} = {format_fixed(result, 1)}°{target}")

    match = _KM_TO_MILES_RE.search(text)
    if match:
        value = parse_number(match.group(1))
        return _conversion(f"{format_number(value)} km = {format_fixed(value * KM_TO_MILES, 2)} miles")

    match = _MILES_TO_KM_RE.search(text)
    if match:
        value = parse_number(match.group(1))
        return _conversion(f"{format_number(value)} miles = {format_fixed(value * MILES_TO_KM, 2)} km")

    return None


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------

_SPLIT_RE = re.compile(
    rf"(?:partage|split)\s+{_NUMBER}\s*(?:cfa|fcfa|€|euros?)?\s+(?:entre|among|between)\s+(\d+)\s*(?:personnes?|people)?",
    re.I,
)
_PERCENT_RE = re.compile(rf"{_NUMBER}\s*%\s*(?:de|of)\s*{_NUMBER}", re.I)
_VAT_RE = re.compile(rf"(?:calcule?r?\s+(?:la\s+)?tva|(?:calculate\s+)?vat)\s+(?:sur|de|on|of)\s+{_NUMBER}", re.I)
# The whole message must be the expression so dates and phone numbers do not match.
_ARITHMETIC_RE = re.compile(
    r"^\s*(?:(?:combien\s+(?:fait|font)|calcule[rz]?|what\s+is|how\s+much\s+is)\s+)?"
    r"(-?\d+(?:[.,]\d+)?)\s*([+\-*/x×÷])\s*(-?\d+(?:[.,]\d+)?)\s*[=?]?\s*$",
    re.I,
)


def _calculation(formatted: str, explanation: Optional[str] = None) -> Intent:
    reply = f"🧮 {formatted}"
    if explanation:
        reply = f"{reply}\n{explanation}"
    return Intent(kind="calculation", reply=reply, value=formatted)


def evaluate_arithmetic(left: float, operator: str, right: float) -> Optional[float]:
    """Apply a binary operator; division by zero yields ``None``."""

    if operator == "+":
        return left + right
    if operator == "-":
        return left - right
    if operator in ("*", "x", "X", "×"):
        return left * right
    if operator in ("/", "÷"):
        if right == 0:
            return None
        return left / right
    return None


def detect_calculation(text: str) -> Optional[Intent]:
    """Bill splitting, percentages, VAT at 18 % and two-operand arithmetic.

    Examples:
        >>> detect_calculation("12 + 8").value
        '20'
        >>> detect_calculation("12 / 0") is None
        True
    """

    match = _SPLIT_RE.search(text)
    if match:
        amount = parse_number(match.group(1))
        people = int(match.group(2))
        if people > 0:
            return _calculation(
                f"{format_number(amount / people)} CFA par personne",
                f"{format_number(amount)} CFA partagé entre {people} personnes",
            )

    match = _PERCENT_RE.search(text)
    if match:
        percent = parse_number(match.group(1))
        amount = parse_number(match.group(2))
        return _calculation(
            format_number(percent / 100 * amount),
            f"{format_number(percent)}% de {format_number(amount)}",
        )

    match = _VAT_RE.search(text)
    if match:
        amount = parse_number(match.group(1))
        vat = amount * VAT_RATE
        formatted = (
            f"HT: {format_number(amount)} CFA\n"
            f"TVA (18%): {format_number(vat)} CFA\n"
            f"TTC: {format_number(amount + vat)} CFA"
        )
        return _calculation(formatted, "Calcul avec TVA à 18%")

    match = _ARITHMETIC_RE.match(text)
    if match:
        result = evaluate_arithmetic(parse_number(match.group(1)), match.group(2), parse_number(match.group(3)))
        if result is None:
            return None
        return _calculation(format_number(result))

    return None


# ---------------------------------------------------------------------------
# Games and generators
# ---------------------------------------------------------------------------

_COIN_RE = re.compile(r"pile\s+ou\s+face|lance\s+une?\s+pi[èe]ce|flip\s+(?:a\s+)?coin", re.I)
_RANDOM_NUMBER_RE = re.compile(
    r"(?:choisis?|donne|g[ée]n[èe]re)(?:-moi)?\s+(?:un\s+)?nombre\s+entre\s+(-?\d+)\s+et\s+(-?\d+)", re.I
)
_RANDOM_CHOICE_RE = re.compile(r"choisis?\s+entre\s+(.+)", re.I)
_CHOICE_SPLIT_RE = re.compile(r"[,،]|\s+ou\s+|\s+et\s+", re.I)
_PASSWORD_RE = re.compile(
    r"(?:g[ée]n[èe]re|cr[ée]e|donne)(?:-moi)?\s+(?:un\s+)?mot\s+de\s+passe(?:\s+de\s+(\d+)\s+caract[èe]res)?", re.I
)

PASSWORD_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
PASSWORD_CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits + PASSWORD_SYMBOLS
MIN_PASSWORD_LENGTH = 4
MAX_PASSWORD_LENGTH = 128


def detect_coin_flip(text: str) -> Optional[Intent]:
    if not _COIN_RE.search(text):
        return None
    side = random.choice(["Pile", "Face"])
    emoji = "🪙" if side == "Pile" else "💰"
    return Intent(kind="coin_flip", reply=f"{emoji} **{side}!**", value=side)


def detect_random_number(text: str) -> Optional[Intent]:
    match = _RANDOM_NUMBER_RE.search(text)
    if not match:
        return None
    low, high = sorted((int(match.group(1)), int(match.group(2))))
    number = random.randint(low, high)
    return Intent(kind="random_number", reply=f"🎲 J'ai choisi le nombre : **{number}**", value=str(number))


def split_choices(raw: str) -> List[str]:
    return [c.strip().rstrip("?.!").strip() for c in _CHOICE_SPLIT_RE.split(raw) if c and c.strip()]


def detect_random_choice(text: str) -> Optional[Intent]:
    match = _RANDOM_CHOICE_RE.search(text)
    if not match:
        return None
    choices = [c for c in split_choices(match.group(1)) if c]
    if len(choices) < 2:
        return None
    choice = random.choice(choices)
    return Intent(kind="random_choice", reply=f"🎯 Mon choix : **{choice}**", value=choice)


def generate_password(length: int = 12) -> str:
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


def detect_password_request(text: str) -> Optional[Intent]:
    match = _PASSWORD_RE.search(text)
    if not match:
        return None
    length = int(match.group(1)) if match.group(1) else 12
    length = min(max(length, MIN_PASSWORD_LENGTH), MAX_PASSWORD_LENGTH)
    password = generate_password(length)
    reply = (
        "🔐 Voici votre mot de passe sécurisé :\n"
        f"`{password}`\n\n"
        "_⚠️ Gardez-le en sécurité et ne le partagez pas_"
    )
    return Intent(kind="password", reply=reply, value=password)


# ---------------------------------------------------------------------------
# Date and time
# ---------------------------------------------------------------------------

_DATETIME_RE = re.compile(
    r"quelle?\s+heure|date\s+(?:sommes[- ]nous|on\s+est)|dans\s+combien\s+de\s+(?:jours?|temps)|quel\s+jour|[âa]ge\s+si",
    re.I,
)
_TIME_RE = re.compile(r"quelle?\s+heure", re.I)
_DATE_RE = re.compile(r"date|quel\s+jour\s+(?:sommes[- ]nous|on\s+est|est[- ]on)", re.I)
_DAYS_UNTIL_RE = re.compile(
    r"dans\s+combien\s+de\s+jours?\s+(?:on\s+sera\s+le\s+|jusqu'au\s+|avant\s+le\s+)?(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?",
    re.I,
)
_AGE_RE = re.compile(
    r"[âa]ge\s+si\s+(?:je\s+suis\s+n[ée]e?|ma\s+naissance(?:\s+est)?)\s+(?:le\s+)?(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})",
    re.I,
)


def _full_year(raw: str, century: int) -> int:
    return century + int(raw) if len(raw) == 2 else int(raw)


def days_until_message(target: date, today: date) -> str:
    diff = (target - today).days
    if diff == 0:
        return "📅 C'est aujourd'hui !"
    if diff == 1:
        return "📅 C'est demain !"
    if diff > 0:
        return f"📅 Dans {diff} jours"
    return f"📅 C'était il y a {abs(diff)} jours"


def age_on(birth: date, today: date) -> int:
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def detect_datetime_query(text: str, now: Optional[datetime] = None) -> Optional[Intent]:
    """Current time, current date, days until a date, age from a birth date.

    Times are given for Abidjan.
    """

    if not _DATETIME_RE.search(text):
        return None

    current = now or now_local(DEFAULT_TIMEZONE)

    if _TIME_RE.search(text):
        clock = format_time(current)
        return Intent(kind="datetime", reply=f"🕐 Il est {clock} à Abidjan", value=clock)

    match = _DAYS_UNTIL_RE.search(text)
    if match:
        year = _full_year(match.group(3), 2000) if match.group(3) else current.year
        try:
            target = date(year, int(match.group(2)), int(match.group(1)))
        except ValueError:
            return None
        reply = days_until_message(target, current.date())
        return Intent(kind="datetime", reply=reply, value=str((target - current.date()).days))

    match = _AGE_RE.search(text)
    if match:
        try:
            birth = date(_full_year(match.group(3), 1900), int(match.group(2)), int(match.group(1)))
        except ValueError:
            return None
        age = age_on(birth, current.date())
        return Intent(kind="datetime", reply=f"🎂 Vous avez {age} ans", value=str(age))

    if _DATE_RE.search(text):
        formatted = format_date_fr(current)
        return Intent(kind="datetime", reply=f"📅 Nous sommes le {formatted}", value=formatted)

    return None
