from typing import Dict, List, Optional, Tuple

from .helpers import api_error, is_valid_phone, normalize_name, parse_bool
from .models import ADDRESS_TYPES

SIZE_PREFERENCES = ("XS", "S", "M", "L", "XL", "XXL")
FAVORITE_CATEGORIES = ("men", "women", "kids", "accessories", "shoes")
ADDRESS_FIELDS = (
    ("street", "street", "Street address is required"),
    ("city", "city", "City is required"),
    ("state", "state", "State is required"),
    ("zipCode", "zip_code", "Zip code is required"),
)

Errors = List[Dict[str, str]]


def validation_error(errors: Errors):
    return api_error(errors[0]["message"], 400, errors=errors)


def check_length(
    errors: Errors, field: str, value: Optional[str], minimum: int, maximum: int, label: str
):
    if value is None or not (minimum <= len(value) <= maximum):
        errors.append(
            {
                "field": field,
                "message": f"{label} must be between {minimum} and {maximum} characters",
            }
        )


def validate_profile_fields(payload: Dict, errors: Errors, partial: bool = True) -> Dict:
    """Validate firstName / lastName / phone / preferences into model attribute updates."""
    updates: Dict = {}
    for wire_key, attribute, label in (
        ("firstName", "first_name", "First name"),
        ("lastName", "last_name", "Last name"),
    ):
        if wire_key in payload or not partial:
            value = normalize_name(payload.get(wire_key))
            check_length(errors, wire_key, value, 2, 50, label)
            updates[attribute] = value

    if "phone" in payload:
        phone = str(payload.get("phone") or "").strip()
        if phone and not is_valid_phone(phone):
            errors.append({"field": "phone", "message": "Please enter a valid phone number"})
        updates["phone"] = phone or None

    if "preferences" in payload and payload.get("preferences") is not None:
        preferences = payload.get("preferences")
        if not isinstance(preferences, dict):
            errors.append({"field": "preferences", "message": "Preferences must be an object"})
        else:
            size = preferences.get("sizePreference")
            if size is not None and size not in SIZE_PREFERENCES:
                errors.append(
                    {"field": "preferences.sizePreference", "message": "Invalid size preference"}
                )
            favorites = preferences.get("favoriteCategories")
            if favorites is not None:
                if not isinstance(favorites, list):
                    errors.append(
                        {
                            "field": "preferences.favoriteCategories",
                            "message": "Favorite categories must be an array",
                        }
                    )
                elif any(item not in FAVORITE_CATEGORIES for item in favorites):
                    errors.append(
                        {"field": "preferences.favoriteCategories", "message": "Invalid category"}
                    )
            updates["preferences"] = preferences
    return updates


def merge_preferences(current: Optional[Dict], changes: Dict) -> Dict:
    merged = dict(current or {})
    merged.update(changes)
    return merged


def normalize_address_payload(payload: Dict, partial: bool = False) -> Tuple[Dict, Errors]:
    """Turn a camelCase address body into Address column values."""
    values: Dict = {}
    errors: Errors = []
    if not isinstance(payload, dict):
        return values, [{"field": "address", "message": "Address must be an object"}]

    for wire_key, attribute, message in ADDRESS_FIELDS:
        raw_value = payload.get(wire_key, payload.get(attribute))
        if raw_value is None and partial:
            continue
        value = str(raw_value or "").strip()
        if not value:
            errors.append({"field": wire_key, "message": message})
        values[attribute] = value

    if "type" in payload or not partial:
        address_type = str(payload.get("type") or "home").strip().lower()
        if address_type not in ADDRESS_TYPES:
            errors.append({"field": "type", "message": "Invalid address type"})
        values["type"] = address_type

    if "country" in payload or not partial:
        country = str(payload.get("country") or "").strip()
        if "country" in payload and not country:
            errors.append({"field": "country", "message": "Country is required"})
        values["country"] = country or "United States"

    is_default_raw = payload.get("isDefault", payload.get("is_default"))
    if is_default_raw is not None or not partial:
        values["is_default"] = bool(parse_bool(is_default_raw, False))

    return values, errors
