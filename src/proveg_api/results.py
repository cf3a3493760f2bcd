"""API result envelopes in the shape of CiviCRM APIv3 results."""

from typing import Any, Dict, List, Mapping, Optional


def create_success(
    values: List[Dict[str, Any]],
    params: Optional[Mapping[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build a success envelope.

    Args:
        values: The records the operation produced
        params: The caller's original parameters, echoed back
        extra: Auxiliary outputs

    Returns:
        Dict with is_error=0, count, values, and id when there is one record
    """
    result: Dict[str, Any] = {
        "is_error": 0,
        "version": 3,
        "count": len(values),
        "values": values,
    }
    if len(values) == 1 and values[0].get("id") is not None:
        result["id"] = values[0]["id"]
    if extra is not None:
        result["extra"] = extra
    if params is not None:
        result["params"] = dict(params)
    return result


def create_error(
    message: str, extra_params: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build an error envelope.

    Args:
        message: The error message
        extra_params: Structured details, usually including ``error_code``

    Returns:
        Dict with is_error=1, error_message and the extra params merged in
    """
    result: Dict[str, Any] = {"is_error": 1, "error_message": message}
    result.update(extra_params or {})
    return result


def first_value(result: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Get the first record of an APIv3 result.

    ``values`` is a list for sequential results and a dict keyed by id
    otherwise; both are handled.
    """
    values = result.get("values") or []
    if isinstance(values, Mapping):
        values = list(values.values())
    return dict(values[0]) if values else {}
