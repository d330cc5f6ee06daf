from typing import Any, List, Mapping, Sequence

# Keys the client sets itself in a single-lookup request, alongside the search key.
# Batch entries are nested under "batch" and cannot collide with them.
RESERVED_FIELDS = ["ssoId", "token", "clientId", "assetId"]

SCALAR_TYPES = (str, int, float, bool)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_search_key(label: str, search_key: Any, reserved: Sequence[str] = ()) -> List[str]:
    """
    Check one search key: a non-empty mapping of field name to scalar value.
    Pass `reserved` for keys that are merged into the request envelope.
    """
    errors: List[str] = []

    if not isinstance(search_key, Mapping):
        return [f"{label}: search key must be a mapping of field name to value"]
    if not search_key:
        return [f"{label}: search key must contain at least one field"]

    for name, value in search_key.items():
        if not _is_non_empty_str(name):
            errors.append(f"{label}: field names must be non-empty strings")
        elif name in reserved:
            errors.append(f"{label}: field '{name}' is reserved for the request envelope")
        if value is None or not isinstance(value, SCALAR_TYPES):
            errors.append(f"{label}: field '{name}' must be a string or number")

    return errors


def validate_search_items(search_items: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    `search_items` maps a caller-chosen identifier to the search key sent to
    the API, e.g. {"PersonA": {"email": "person.a@example.com"}}.
    """
    if not isinstance(search_items, Mapping):
        return ["Search items must be a mapping of identifier to search key"]

    errors: List[str] = []
    for identifier, search_key in search_items.items():
        if identifier is None or (isinstance(identifier, str) and not identifier.strip()):
            errors.append("Identifiers must not be empty")
            continue
        errors.extend(validate_search_key(f"Item '{identifier}'", search_key))
    return errors
