"""
CSV import/export for phone records.

Columns use the API's camelCase names. ``images`` holds pipe-separated
URLs. Rows are validated against the Phone schema; the first bad row
aborts the whole import.
"""

import csv
import io
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from schemas import Phone

TEMPLATE_COLUMNS = [
    "id", "name", "brand", "ram", "rom", "color", "battery", "camera", "frontCamera",
    "marketPrice", "jumiaPrice", "ouPrice", "description", "images", "condition",
]
EXPORT_COLUMNS = TEMPLATE_COLUMNS + ["os", "sim", "inspectionVideo", "addedDate"]

REQUIRED_COLUMNS = {
    "name", "brand", "ram", "rom", "battery", "camera", "frontCamera",
    "marketPrice", "jumiaPrice", "ouPrice", "description", "images", "condition",
}
NULLABLE_COLUMNS = {"color", "os", "sim", "inspectionVideo"}

TEMPLATE_SAMPLE_ROW = [
    "p100", "New Phone", "Samsung", "8", "256", "Black", "5000", "64", "32",
    "200000", "190000", "180000", "Great phone",
    "https://example.com/img1.jpg|https://example.com/img2.jpg", "New",
]


class CsvImportError(ValueError):
    def __init__(self, message: str, line: Optional[int] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.line = line
        self.errors = errors or []
        super().__init__(f"line {line}: {message}" if line is not None else message)


def _describe(errors: List[Dict[str, Any]]) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in errors)


def parse_csv(text: str, now: Optional[datetime] = None) -> List[Phone]:
    now = now or datetime.now(timezone.utc)
    stamp = int(time.time() * 1000)

    reader = csv.DictReader(io.StringIO(text.strip()))
    if not reader.fieldnames:
        raise CsvImportError("missing header row")
    headers = [h.strip() for h in reader.fieldnames]
    reader.fieldnames = headers
    missing = REQUIRED_COLUMNS - set(headers)
    if missing:
        raise CsvImportError(f"missing columns: {', '.join(sorted(missing))}", line=1)

    phones: List[Phone] = []
    for row in reader:
        line = reader.line_num
        if None in row or any(v is None for v in row.values()):
            raise CsvImportError(f"expected {len(headers)} fields", line=line)

        record = {k: v.strip() for k, v in row.items()}
        for key in NULLABLE_COLUMNS & record.keys():
            if record[key] == "":
                record[key] = None
        record["images"] = [u.strip() for u in record.get("images", "").split("|") if u.strip()]
        if not record.get("id"):
            record["id"] = f"csv-{stamp}-{line}"
        if not record.get("addedDate"):
            record["addedDate"] = now

        try:
            phones.append(Phone.model_validate(record))
        except ValidationError as e:
            errors = e.errors(include_url=False)
            raise CsvImportError(_describe(errors), line=line, errors=errors) from e

    return phones


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "|".join(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def export_phones(phones: Sequence[Phone]) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for phone in phones:
        data = phone.model_dump(by_alias=True)
        writer.writerow([_cell(data.get(col)) for col in EXPORT_COLUMNS])
    return out.getvalue()


def generate_template() -> str:
    return ",".join(TEMPLATE_COLUMNS) + "\n" + ",".join(TEMPLATE_SAMPLE_ROW)
