"""Helpers for the untyped key/value settings collection."""

from typing import Dict, Mapping, Union

SettingValue = Union[str, bool, int, float]

DEFAULT_SETTINGS: Dict[str, str] = {
    "storeName": "O&U Gadgets",
    "currency": "₦",
    "contactPhone": "+234 800 000 0000",
    "publicCatalog": "true",
    "priceComparison": "true",
}


def serialize_value(value: SettingValue) -> str:
    # bool first: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def with_defaults(stored: Mapping[str, str]) -> Dict[str, str]:
    return {**DEFAULT_SETTINGS, **stored}
