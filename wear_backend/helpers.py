import json
import re
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from flask import jsonify, request

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_REGEX = re.compile(r"^\+?[1-9]\d{0,15}$")
NUMERIC_ID_REGEX = re.compile(r"^\d+$")
MAX_PAGE_SIZE = 100


def utcnow() -> datetime:
    # Naive UTC so values compare cleanly after a round trip through SQLite.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def api_success(data=None, message: Optional[str] = None, status: int = 200, **extra):
    body: Dict[str, object] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def api_error(message: str, status: int = 400, **extra):
    body: Dict[str, object] = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status


def get_json_payload() -> Dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def get_request_payload() -> Dict:
    """JSON body, or the form fields of a multipart / urlencoded request."""
    if request.form:
        return request.form.to_dict()
    return get_json_payload()


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    normalized = normalize_email(value)
    return bool(normalized and EMAIL_REGEX.match(normalized))


def is_valid_phone(value: Optional[str]) -> bool:
    return bool(PHONE_REGEX.match(str(value or "").strip()))


def is_numeric_id(value) -> bool:
    return bool(NUMERIC_ID_REGEX.match(str(value or "")))


def parse_int(value) -> Optional[int]:
    """Strict integer parsing: ``"3"`` and ``3`` pass, ``"3.5"`` and ``True`` do not."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    candidate = str(value).strip()
    if re.fullmatch(r"-?\d+", candidate):
        return int(candidate)
    return None


def parse_decimal(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    candidate = str(value).strip()
    if not candidate:
        return None
    try:
        parsed = Decimal(candidate)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    try:
        return parsed.quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def parse_bool(value, default: Optional[bool] = None) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return default


def parse_json_list(value):
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [item for item in value]
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            value = ""
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return []
        try:
            parsed = json.loads(candidate)
            if isinstance(parsed, list):
                return parsed
        except (json.JSONDecodeError, ValueError):
            pass
        if "," in candidate:
            return [
                item.strip()
                for item in candidate.split(",")
                if item and item.strip()
            ]
        return [candidate]
    return [value]


def parse_json_object(value) -> Tuple[Optional[Dict], Optional[str]]:
    if value is None or value == "":
        return None, None
    if isinstance(value, dict):
        return value, None
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return None, "Expected a JSON object."
        if isinstance(parsed, dict):
            return parsed, None
    return None, "Expected a JSON object."


def parse_id_list(values) -> List[int]:
    identifiers: List[int] = []
    seen = set()
    for value in parse_json_list(values):
        parsed = parse_int(value)
        if parsed is None or parsed in seen:
            continue
        seen.add(parsed)
        identifiers.append(parsed)
    return identifiers


def normalize_name(value: Optional[str]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).strip()


def slugify(value: Optional[str]) -> str:
    normalized_name = normalize_name(value).lower()
    ascii_name = (
        unicodedata.normalize("NFKD", normalized_name)
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    if not slug:
        slug = uuid4().hex
    return slug


def to_cents(amount) -> int:
    if amount is None:
        return 0
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if not isinstance(value, datetime):
        return None
    return value.isoformat() + "Z" if value.tzinfo is None else value.isoformat()


def get_pagination_params(default_limit: int) -> Tuple[int, int]:
    page = parse_int(request.args.get("page")) or 1
    limit = parse_int(request.args.get("limit")) or default_limit
    return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)


def serialize_pagination(pagination, total_key: str) -> Dict[str, int]:
    return {
        "currentPage": pagination.page,
        "totalPages": pagination.pages,
        total_key: pagination.total,
        "perPage": pagination.per_page,
    }
