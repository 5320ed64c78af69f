"""CSV serialization with spreadsheet formula-injection guarding."""

import csv
import io
import json
from datetime import date, datetime
from typing import Any, Iterable, Sequence

CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def csv_safe(value: str) -> str:
    if value and value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def serialize_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def write_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([csv_safe(serialize_csv_value(value)) for value in row])
    return output.getvalue()


def attachment_headers(prefix: str) -> dict[str, str]:
    """Content-Disposition for a timestamped CSV download."""
    filename = f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
    return {"Content-Disposition": f'attachment; filename="{filename}"'}
