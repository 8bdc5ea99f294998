"""Export verification outcomes to JSON, JSONL or CSV files."""

import csv
import json
from datetime import UTC, datetime
from pathlib import Path

from dkic.types import PageContext, VerificationOutcome

FIELD_URL = "url"
FIELD_SUCCESS = "success"
FIELD_DOMAIN = "domain"
FIELD_ERROR_KIND = "error_kind"
FIELD_ERROR = "error"
FIELD_TIMESTAMP = "timestamp"
EXPORT_FIELDS = (
    FIELD_URL,
    FIELD_SUCCESS,
    FIELD_DOMAIN,
    FIELD_ERROR_KIND,
    FIELD_ERROR,
    FIELD_TIMESTAMP,
)

Row = tuple[PageContext, VerificationOutcome]


def export_outcomes(rows: list[Row], output_path: str) -> None:
    """Export outcomes to a file. Format is auto-detected from extension.

    Args:
        rows: (page, outcome) pairs.
        output_path: Path to output file (.json, .jsonl, or .csv).

    Raises:
        ValueError: If the file extension is not .json, .jsonl, or .csv.
    """
    path = Path(output_path)
    ext = path.suffix.lower()

    if ext == ".json":
        records = [_build_row(c, o) for c, o in rows]
        path.write_text(json.dumps(records, indent=2) + "\n")
    elif ext == ".jsonl":
        lines = [json.dumps(_build_row(c, o)) for c, o in rows]
        path.write_text("\n".join(lines) + "\n")
    elif ext == ".csv":
        _export_csv(rows, path)
    else:
        raise ValueError(f"Unsupported file format '{ext}'. Use .json, .jsonl, or .csv.")


def _build_row(context: PageContext, outcome: VerificationOutcome) -> dict:
    return {
        FIELD_URL: context.url,
        FIELD_SUCCESS: outcome.success,
        FIELD_DOMAIN: outcome.domain or "",
        FIELD_ERROR_KIND: outcome.error_kind.value if outcome.error_kind else "",
        FIELD_ERROR: outcome.error or "",
        FIELD_TIMESTAMP: datetime.now(UTC).isoformat(),
    }


def _export_csv(rows: list[Row], path: Path) -> None:
    with path.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(EXPORT_FIELDS))
        writer.writeheader()
        for context, outcome in rows:
            writer.writerow(_build_row(context, outcome))
