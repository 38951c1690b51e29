from __future__ import annotations

from typing import Any

from .constants import PROFILE_FIELD_DISPLAY, PROFILE_FIELDS
from .models import User


class ProfileError(ValueError):
    pass


PROFILE_USAGE = (
    "Формат: /profile возраст=35 пол=м рост=180 вес=75\n"
    "Можно указать только часть полей."
)

FIELD_ALIASES = {
    "возраст": "age",
    "age": "age",
    "пол": "gender",
    "gender": "gender",
    "рост": "height_cm",
    "height": "height_cm",
    "вес": "weight_kg",
    "weight": "weight_kg",
}

GENDER_ALIASES = {
    "м": "male",
    "муж": "male",
    "мужской": "male",
    "m": "male",
    "male": "male",
    "ж": "female",
    "жен": "female",
    "женский": "female",
    "f": "female",
    "female": "female",
}

GENDER_DISPLAY = {"male": "мужской", "female": "женский"}

# Closed ranges accepted for numeric fields.
NUMERIC_LIMITS = {
    "age": (1, 120),
    "height_cm": (50.0, 250.0),
    "weight_kg": (20.0, 350.0),
}


def _parse_number(field: str, raw: str) -> int | float:
    low, high = NUMERIC_LIMITS[field]
    try:
        value: int | float = int(raw) if field == "age" else float(raw.replace(",", "."))
    except ValueError as exc:
        raise ProfileError(f"{PROFILE_FIELD_DISPLAY[field]}: нужно число") from exc
    if value < low or value > high:
        raise ProfileError(f"{PROFILE_FIELD_DISPLAY[field]}: допустимо от {low} до {high}")
    return value


def parse_profile_update(raw_args: str) -> dict[str, Any]:
    tokens = raw_args.split()
    if not tokens:
        raise ProfileError(PROFILE_USAGE)

    fields: dict[str, Any] = {}
    for token in tokens:
        key, sep, raw_value = token.partition("=")
        if not sep or not raw_value:
            raise ProfileError(PROFILE_USAGE)

        field = FIELD_ALIASES.get(key.lower())
        if field is None:
            raise ProfileError(f"Неизвестное поле '{key}'.\n{PROFILE_USAGE}")

        if field == "gender":
            gender = GENDER_ALIASES.get(raw_value.lower())
            if gender is None:
                raise ProfileError("Пол: укажите 'м' или 'ж'")
            fields[field] = gender
        else:
            fields[field] = _parse_number(field, raw_value)

    return fields


def format_profile(user: User) -> str:
    lines = [f"Профиль: {user.display_name}"]
    for field in PROFILE_FIELDS:
        value = getattr(user, field)
        if field == "gender" and value:
            value = GENDER_DISPLAY.get(value, value)
        lines.append(f"{PROFILE_FIELD_DISPLAY[field]}: {value if value is not None else 'не указано'}")
    return "\n".join(lines)
