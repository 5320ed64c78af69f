"""Log ``extra=`` context for clinic requests.

Identifiers only: patient names, phones and clinical text never go in here.
"""

from typing import Any


def build_log_context(
    *,
    user_id: int | None = None,
    clinic_id: int | None = None,
    operation: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    fields = {
        "user_id": user_id,
        "clinic_id": clinic_id,
        "operation": operation,
        "route": route,
        "method": method,
    }
    return {key: value for key, value in fields.items() if value is not None}
