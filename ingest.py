"""
Upload ingestion: spreadsheet / delimited text files -> canonical records.

Every file is parsed independently. A file that cannot be read fails alone;
the batch collects one outcome per file and reloads the record set once.
"""

import asyncio
import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from normalizer import NumberLocale, SalesRecord, normalize_rows
from store import RecordStore

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")
TEXT_EXTENSIONS = (".csv", ".txt")
HEADER_MARKERS = ("FECHA", "EAN", "TIENDA")


class IngestError(Exception):
    pass


@dataclass
class UploadedFile:
    name: str
    content: bytes

    @classmethod
    def from_path(cls, path: str | Path) -> "UploadedFile":
        path = Path(path)
        return cls(name=path.name, content=path.read_bytes())


@dataclass
class IngestSuccess:
    file_name: str
    records: list[SalesRecord]
    skipped: int = 0
    ok: bool = field(default=True, init=False)


@dataclass
class IngestFailure:
    file_name: str
    error: str
    ok: bool = field(default=False, init=False)


IngestOutcome = IngestSuccess | IngestFailure


def is_supported(file_name: str) -> bool:
    return file_name.lower().endswith(SPREADSHEET_EXTENSIONS + TEXT_EXTENSIONS)


# -----------------------------------------------------------------------------
# Spreadsheets
# -----------------------------------------------------------------------------


def _cell_text(value: Any) -> str | None:
    """Spreadsheet cell as display text; empty cells become None."""
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return None if pd.isna(value) else value.strftime("%Y-%m-%d")
    if isinstance(value, float):
        if pd.isna(value):
            return None
        if value.is_integer():
            return str(int(value))
    return str(value)


def read_spreadsheet_rows(content: bytes) -> list[list[str | None]]:
    """First sheet as a 2-D array of cell texts."""
    frame = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None)
    return [[_cell_text(v) for v in row] for row in frame.itertuples(index=False, name=None)]


def find_header_row(rows: Sequence[Sequence[str | None]]) -> int | None:
    for idx, row in enumerate(rows):
        if any(cell and any(m in cell for m in HEADER_MARKERS) for cell in row):
            return idx
    return None


def _parse_spreadsheet(name: str, content: bytes) -> tuple[list[str], list[list[str | None]]]:
    rows = read_spreadsheet_rows(content)
    header_idx = find_header_row(rows)
    if header_idx is None:
        raise IngestError(f"No valid header in file {name}")
    headers = [h or "" for h in rows[header_idx]]
    return headers, rows[header_idx + 1:]


# -----------------------------------------------------------------------------
# Delimited text
# -----------------------------------------------------------------------------


def decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def split_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line; delimiters inside double-quoted fields are kept."""
    values = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [])
    return [v.strip() for v in values]


def find_header_line(lines: Sequence[str]) -> int | None:
    for idx, line in enumerate(lines):
        if line.startswith(HEADER_MARKERS):
            return idx
    return None


def _parse_delimited(name: str, content: bytes) -> tuple[list[str], list[list[str]]]:
    lines = decode_text(content).splitlines()
    header_idx = find_header_line(lines)
    if header_idx is None:
        raise IngestError(f"No valid header in file {name}")

    header_line = lines[header_idx]
    delimiter = ";" if ";" in header_line and "," not in header_line else ","
    headers = split_csv_line(header_line, delimiter)

    rows = []
    malformed = 0
    for line in lines[header_idx + 1:]:
        if not line:
            continue
        values = split_csv_line(line, delimiter)
        if len(values) != len(headers):
            malformed += 1
            continue
        rows.append(values)
    if malformed:
        logger.info("%s: dropped %d malformed lines", name, malformed)
    return headers, rows


# -----------------------------------------------------------------------------
# Files and batches
# -----------------------------------------------------------------------------


def ingest_file(file: UploadedFile, locale: NumberLocale = NumberLocale.LEGACY) -> IngestOutcome:
    """Parse one upload. Never raises: failures come back as IngestFailure."""
    lower = file.name.lower()
    try:
        if lower.endswith(SPREADSHEET_EXTENSIONS):
            headers, rows = _parse_spreadsheet(file.name, file.content)
        elif lower.endswith(TEXT_EXTENSIONS):
            headers, rows = _parse_delimited(file.name, file.content)
        else:
            raise IngestError(f"Unsupported file type: {file.name}")
        result = normalize_rows(headers, rows, locale)
    except Exception as e:
        logger.warning("File '%s' rejected: %s", file.name, e)
        return IngestFailure(file_name=file.name, error=str(e))

    logger.info("%s: %d records", file.name, len(result.records))
    return IngestSuccess(file_name=file.name, records=result.records, skipped=result.skipped)


async def ingest_files(
    files: Sequence[UploadedFile],
    locale: NumberLocale = NumberLocale.LEGACY,
) -> list[IngestOutcome]:
    """Parse files concurrently; one settled outcome per file, in input order."""
    results = await asyncio.gather(
        *(asyncio.to_thread(ingest_file, f, locale) for f in files),
        return_exceptions=True,
    )
    outcomes: list[IngestOutcome] = []
    for f, res in zip(files, results):
        if isinstance(res, BaseException):
            outcomes.append(IngestFailure(file_name=f.name, error=str(res)))
        else:
            outcomes.append(res)
    return outcomes


@dataclass
class BatchSummary:
    outcomes: list[IngestOutcome]
    records_added: int = 0
    records: list[SalesRecord] | None = None

    @property
    def successes(self) -> list[IngestSuccess]:
        return [o for o in self.outcomes if isinstance(o, IngestSuccess)]

    @property
    def failures(self) -> list[IngestFailure]:
        return [o for o in self.outcomes if isinstance(o, IngestFailure)]

    def message(self) -> str:
        failed = len(self.failures)
        if self.records_added and failed:
            return f"{self.records_added} records saved. Failed: {failed} file(s)."
        if self.records_added:
            return f"{self.records_added} records saved successfully."
        if failed:
            return f"Error processing {failed} file(s)."
        return "No records found in the uploaded files."


async def ingest_batch(
    files: Sequence[UploadedFile],
    store: RecordStore,
    locale: NumberLocale = NumberLocale.LEGACY,
) -> BatchSummary:
    """
    Parse every file, store each file's records under its name, then reload
    the full record set once. BatchWriteError from the store propagates.
    """
    outcomes = await ingest_files(files, locale)
    summary = BatchSummary(outcomes=outcomes)
    for ok in summary.successes:
        if ok.records:
            await store.add_batch(ok.records, file_id=ok.file_name)
            summary.records_added += len(ok.records)

    if summary.records_added:
        summary.records = await store.get_all()
    logger.info(summary.message())
    return summary
