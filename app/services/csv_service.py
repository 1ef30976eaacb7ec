"""CSV import and export for bulk edit jobs."""
import csv
import io
import logging
from typing import List, Optional

from app.config import settings
from app.exceptions import ValidationError
from app.services.batch_service import BatchResult, IdentifierRow
from app.services.resource_locator import check_identifier_type

logger = logging.getLogger(__name__)

# Header of the first export column when the job had no CSV (store-wide runs)
DEFAULT_IDENTIFIER_COLUMN = "ID"

# Columns after the identifier column, per export mode
EXPORT_COLUMNS = {
    "remove": ["success", "value", "error"],
    "add": ["Tags", "Success", "Error"],
    "update": ["key", "value", "success", "error"],
}


def _find_column(fieldnames: List[str], wanted: str) -> Optional[str]:
    for name in fieldnames:
        if name and name.strip().lower() == wanted.lower():
            return name
    return None


def parse_csv(
    text: str,
    identifier_column: str,
    object_type: Optional[str] = None,
    require_value: bool = False,
    max_rows: Optional[int] = None
) -> List[IdentifierRow]:
    """
    Parse an uploaded CSV into identifier rows.

    Headers match case-insensitively. The whole file is rejected when a
    required column is missing, when it has no rows, when it exceeds the row
    cap, or when a native ID belongs to a different object type than
    ``object_type``. Nothing is sent to the shop in any of those cases.
    """
    max_rows = max_rows or settings.csv_max_rows
    text = (text or "").lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    fieldnames = reader.fieldnames or []

    id_col = _find_column(fieldnames, identifier_column)
    if id_col is None:
        raise ValidationError(f"CSV is missing the required column: {identifier_column}")

    value_col = _find_column(fieldnames, "value")
    if require_value and value_col is None:
        raise ValidationError("CSV is missing the required column: value")

    rows = []
    for record in reader:
        identifier = (record.get(id_col) or "").strip()
        value = record.get(value_col) if value_col else None
        if not identifier and not (value or "").strip():
            continue
        rows.append(IdentifierRow(identifier=identifier, value=value))
        if len(rows) > max_rows:
            raise ValidationError(f"CSV has more than {max_rows} rows. Split the file and try again.")

    if not rows:
        raise ValidationError("CSV contains no rows")

    if object_type:
        for row in rows:
            check_identifier_type(object_type, row.identifier)

    logger.info("Parsed CSV with %d rows (column %s)", len(rows), id_col)
    return rows


def _export_row(result: BatchResult, mode: str, key: Optional[str]) -> list:
    if mode == "add":
        return [result.id, ", ".join(result.tags or []), str(result.success).lower(), result.error or ""]

    if mode == "update":
        value = (result.data or {}).get("value") or ""
        return [result.id, key or "", value, str(result.success).lower(), result.error or ""]

    if result.removed_tags is not None:
        value = ", ".join(result.removed_tags)
    else:
        value = (result.data or {}).get("value") or ""
    return [result.id, str(result.success).lower(), value, result.error or ""]


def export_csv(
    results: List[BatchResult],
    mode: str,
    key: Optional[str] = None,
    identifier_column: str = DEFAULT_IDENTIFIER_COLUMN
) -> str:
    """
    Render job results as CSV. Fields are quoted only when they need it.

    The first column is headed with the identifier column of the uploaded
    CSV, so an export can be fed back in as a new upload.
    """
    if mode not in EXPORT_COLUMNS:
        raise ValidationError(f"Unknown export mode: {mode}")

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([identifier_column or DEFAULT_IDENTIFIER_COLUMN] + EXPORT_COLUMNS[mode])
    for result in results:
        writer.writerow(_export_row(result, mode, key))
    return buffer.getvalue()
