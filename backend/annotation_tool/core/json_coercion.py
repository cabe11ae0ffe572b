import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def parse_json_string(value: Any) -> Any:
    """
    Best-effort coercion of a JSON string or structured value.
    Strings are decoded, dicts and lists pass through, anything else is None.
    Never raises: a malformed string is logged and becomes None.
    """
    if isinstance(value, str):
        try:
            return json.loads(value)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Can not parse parameter '{value}': {e}")
            return None

    if callable(value) or not isinstance(value, (dict, list)):
        return None

    return value
