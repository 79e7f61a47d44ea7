# eatwhat/json_utils.py
"""
Centralized JSON parsing utilities for the recommendation core.
Provides consistent error handling for database JSONB columns and LLM output.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar('T')

# ```json ... ``` wrapper emitted by chat models
_CODE_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

RECIPE_JSONB_FIELDS = {
    'ingredients': [],
    'steps': [],
    'nutrition_facts': None,
}


def safe_json_parse(
    value: Any,
    default: T = None,
    expected_type: type = None
) -> Union[T, Dict, List, str, int, float, bool]:
    """
    Safely parse JSON with consistent error handling.

    Args:
        value: Value to parse (string, dict, list, etc.)
        default: Default value to return on parse failure
        expected_type: Expected type for validation (dict, list, etc.)

    Returns:
        Parsed value or default on failure
    """
    if expected_type and isinstance(value, expected_type):
        return value

    if not isinstance(value, str):
        return value if value is not None else default

    try:
        parsed = json.loads(value)

        if expected_type and not isinstance(parsed, expected_type):
            logger.warning(f"Parsed JSON type {type(parsed)} doesn't match expected {expected_type}")
            return default

        return parsed

    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.debug(f"JSON parse failed for value '{value[:100]}...': {e}")
        return default


def parse_jsonb_field(
    field_value: Any,
    default: Any = None,
    field_name: str = "unknown"
) -> Any:
    """
    Parse JSONB field from database with fallback to a default.

    Args:
        field_value: JSONB field value from database
        default: Value to return when the field is empty or unparseable
        field_name: Field name for logging purposes

    Returns:
        Parsed value or default
    """
    if field_value is None:
        return default

    if isinstance(field_value, (dict, list)):
        return field_value

    parsed = safe_json_parse(field_value, default)

    if parsed is default and field_value:
        logger.warning(f"Failed to parse JSONB field '{field_name}': {field_value}")

    return parsed


def parse_recipe_row(row: Dict) -> Dict:
    """
    Parse a recipes row, decoding its JSONB columns.

    Args:
        row: Recipe record from database

    Returns:
        Recipe dict with parsed JSONB fields
    """
    recipe_dict = dict(row)

    for field_name, default in RECIPE_JSONB_FIELDS.items():
        recipe_dict[field_name] = parse_jsonb_field(
            recipe_dict.get(field_name),
            default=default,
            field_name=f"recipe_{field_name}",
        )

    return recipe_dict


def strip_code_fence(content: str) -> str:
    """Remove a Markdown code-fence wrapper (```json ... ```) if present"""
    match = _CODE_FENCE_RE.match(content)
    if match:
        return match.group(1).strip()
    return content.strip()


def load_json_object(value: str) -> Optional[Dict]:
    """Parse a JSON object, returning None for anything that is not an object"""
    parsed = safe_json_parse(value, default=None, expected_type=dict)
    return parsed if isinstance(parsed, dict) else None
