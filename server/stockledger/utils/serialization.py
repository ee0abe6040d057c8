from datetime import date, datetime
from decimal import Decimal
import json


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(payload) -> str | None:
    if payload is None:
        return None
    return json.dumps(payload, default=_default, sort_keys=True)


def loads(raw: str | None):
    if not raw:
        return None
    return json.loads(raw)
