"""CSV import of individuals and measurements.

Two templates are accepted:

individuals.csv
    individual_code, species_common, species_scientific, stage, sex,
    introduced_date, birth_date, line_name, parent_code_m, parent_code_f,
    notes

measurements.csv
    individual_code, measured_at, weight_g, length_mm, jaw_width_mm, note

camelCase headers (individualCode, measuredAt, ...) are normalized.

Each row is validated on its own; a bad row becomes a RowError and the
batch continues. Only a file that cannot be read at all (not UTF-8,
missing required columns, no data rows) raises CsvFormatError.

Duplicate handling follows the import mode:
- skip: keep the existing record, count the row as skipped
- overwrite: replace the existing record's attributes (individuals keep
  id, photos and measurements; measurements keep their id)
- new_assignment: register the row anyway (individuals under a fresh
  code "<code>-2", "<code>-3", ...; measurements appended)
"""

import csv
import io
import re
from pathlib import PurePath
from typing import Dict, Iterator, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .errors import BeetleBaseError, CsvFormatError, ValidationError, field_errors
from .records import RecordStore
from .schemas import (
    ImportReport,
    IndividualDraft,
    Measurement,
    RowError,
    IMPORT_MODE_NEW_ASSIGNMENT,
    IMPORT_MODE_OVERWRITE,
    IMPORT_MODE_SKIP,
    IMPORT_TYPE_INDIVIDUALS,
    IMPORT_TYPE_MEASUREMENTS,
    VALID_IMPORT_MODES,
)


MAX_CSV_BYTES = 10 * 1024 * 1024
CSV_EXTENSION = ".csv"

INDIVIDUAL_COLUMNS = [
    "individual_code",
    "species_common",
    "species_scientific",
    "stage",
    "sex",
    "introduced_date",
    "birth_date",
    "line_name",
    "parent_code_m",
    "parent_code_f",
    "notes",
]
REQUIRED_INDIVIDUAL_COLUMNS = ["individual_code", "species_common", "species_scientific", "introduced_date"]

MEASUREMENT_COLUMNS = [
    "individual_code",
    "measured_at",
    "weight_g",
    "length_mm",
    "jaw_width_mm",
    "note",
]
REQUIRED_MEASUREMENT_COLUMNS = ["individual_code", "measured_at"]

VALID_IMPORT_TYPES = {IMPORT_TYPE_INDIVIDUALS, IMPORT_TYPE_MEASUREMENTS}


# ============================================================================
# Upload validation
# ============================================================================

def validate_upload(filename: str, size_bytes: int, max_bytes: int = MAX_CSV_BYTES) -> None:
    """
    Check the uploaded file before a job is created.

    Raises:
        ValidationError: wrong extension, empty file or over the size ceiling
    """
    errors = []

    if PurePath(filename or "").suffix.lower() != CSV_EXTENSION:
        errors.append({"field": "file", "message": f"'{filename}' is not a .csv file"})
    if size_bytes <= 0:
        errors.append({"field": "file", "message": "file is empty"})
    elif size_bytes > max_bytes:
        errors.append({"field": "file", "message": f"file is {size_bytes} bytes, limit is {max_bytes} bytes"})

    if errors:
        logger.warning(f"Rejected upload {filename}: {errors}")
        raise ValidationError("Invalid CSV upload", errors)


def validate_import_options(import_type: str, import_mode: str) -> None:
    errors = []
    if import_type not in VALID_IMPORT_TYPES:
        errors.append({"field": "import_type", "message": f"must be one of {sorted(VALID_IMPORT_TYPES)}"})
    if import_mode not in VALID_IMPORT_MODES:
        errors.append({"field": "import_mode", "message": f"must be one of {sorted(VALID_IMPORT_MODES)}"})
    if errors:
        raise ValidationError("Invalid import options", errors)


# ============================================================================
# CSV reading
# ============================================================================

def normalize_header(name: str) -> str:
    """'individualCode' / 'Individual Code' -> 'individual_code'."""
    name = (name or "").strip()
    name = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    name = re.sub(r"[\s\-]+", "_", name)
    return name.lower()


def read_csv_rows(content: bytes, required_columns: List[str]) -> Iterator[Tuple[int, Dict[str, Optional[str]]]]:
    """
    Decode a CSV payload and yield (line_number, row) pairs.

    Values are stripped; empty cells become None.

    Raises:
        CsvFormatError: if the file cannot be decoded or lacks required columns
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvFormatError(f"CSV file is not valid UTF-8: {e}") from e

    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        header = next(reader)
    except StopIteration:
        raise CsvFormatError("CSV file is empty")
    except csv.Error as e:
        raise CsvFormatError(f"CSV header could not be parsed: {e}") from e

    columns = [normalize_header(col) for col in header]
    missing = [col for col in required_columns if col not in columns]
    if missing:
        raise CsvFormatError(
            f"Missing required columns: {', '.join(missing)}",
            [{"field": col, "message": "missing column"} for col in missing],
        )

    try:
        for values in reader:
            if not any(v.strip() for v in values):
                continue
            row = {}
            for col, value in zip(columns, values):
                value = value.strip()
                row[col] = value if value else None
            yield reader.line_num, row
    except csv.Error as e:
        raise CsvFormatError(f"CSV could not be parsed near line {reader.line_num}: {e}") from e


def _row_errors(line: int, exc: PydanticValidationError) -> List[RowError]:
    return [RowError(line=line, field=err["field"], message=err["message"]) for err in field_errors(exc)]


def _lowercase(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else value


def next_available_code(store: RecordStore, code: str) -> str:
    """First free code of the form '<code>-2', '<code>-3', ..."""
    suffix = 2
    while store.code_exists(f"{code}-{suffix}"):
        suffix += 1
    return f"{code}-{suffix}"


# ============================================================================
# Individuals
# ============================================================================

def import_individuals(store: RecordStore, content: bytes, import_mode: str = IMPORT_MODE_SKIP) -> ImportReport:
    """
    Import individuals from a CSV payload into the record store.

    New individuals pass through RecordStore.add_individual, so plan
    quotas apply row by row.

    Args:
        store: Target record store
        content: Raw CSV bytes
        import_mode: 'skip', 'overwrite' or 'new_assignment'

    Returns:
        ImportReport with counts and per-row errors

    Raises:
        CsvFormatError: if the file itself cannot be parsed
    """
    report = ImportReport(import_type=IMPORT_TYPE_INDIVIDUALS, import_mode=import_mode)

    for line, row in read_csv_rows(content, REQUIRED_INDIVIDUAL_COLUMNS):
        report.total_rows += 1

        fields = {col: row.get(col) for col in INDIVIDUAL_COLUMNS if row.get(col) is not None}
        for enum_field in ("stage", "sex"):
            if enum_field in fields:
                fields[enum_field] = _lowercase(fields[enum_field])

        try:
            draft = IndividualDraft(**fields)
        except PydanticValidationError as e:
            report.errors.extend(_row_errors(line, e))
            continue

        existing = store.find_by_code(draft.individual_code)

        try:
            if existing is None:
                store.add_individual(draft)
                report.imported += 1
            elif import_mode == IMPORT_MODE_SKIP:
                report.skipped += 1
            elif import_mode == IMPORT_MODE_OVERWRITE:
                store.update_individual(existing.model_copy(update=draft.model_dump()))
                report.updated += 1
            else:
                new_code = next_available_code(store, draft.individual_code)
                store.add_individual(draft.model_copy(update={"individual_code": new_code}))
                logger.info(f"Line {line}: code {draft.individual_code} exists, registered as {new_code}")
                report.imported += 1
        except BeetleBaseError as e:
            report.errors.append(RowError(line=line, message=e.message))

    _finish_report(report)
    return report


# ============================================================================
# Measurements
# ============================================================================

def import_measurements(store: RecordStore, content: bytes, import_mode: str = IMPORT_MODE_SKIP) -> ImportReport:
    """
    Import measurements from a CSV payload.

    A measurement duplicates an existing one when the individual already
    has a measurement at the same `measured_at`.

    Raises:
        CsvFormatError: if the file itself cannot be parsed
    """
    report = ImportReport(import_type=IMPORT_TYPE_MEASUREMENTS, import_mode=import_mode)

    for line, row in read_csv_rows(content, REQUIRED_MEASUREMENT_COLUMNS):
        report.total_rows += 1

        code = row.get("individual_code")
        individual = store.find_by_code(code) if code else None
        if individual is None:
            report.errors.append(RowError(
                line=line,
                field="individual_code",
                message=f"Unknown individual code '{code}'" if code else "individual_code is required",
            ))
            continue

        fields = {col: row.get(col) for col in MEASUREMENT_COLUMNS[1:] if row.get(col) is not None}
        try:
            candidate = Measurement(id="candidate", **fields)
        except PydanticValidationError as e:
            report.errors.extend(_row_errors(line, e))
            continue

        duplicate = next((m for m in individual.measurements if m.measured_at == candidate.measured_at), None)

        if duplicate is None or import_mode == IMPORT_MODE_NEW_ASSIGNMENT:
            store.add_measurement(individual.id, candidate.model_dump(exclude={"id"}))
            report.imported += 1
        elif import_mode == IMPORT_MODE_SKIP:
            report.skipped += 1
        else:
            store.replace_measurement(individual.id, candidate.model_copy(update={"id": duplicate.id}))
            report.updated += 1

    _finish_report(report)
    return report


# ============================================================================
# Entry point
# ============================================================================

def run_import(store: RecordStore, content: bytes, import_type: str, import_mode: str) -> ImportReport:
    """Dispatch to the importer for the given template type."""
    validate_import_options(import_type, import_mode)

    if import_type == IMPORT_TYPE_MEASUREMENTS:
        return import_measurements(store, content, import_mode)
    return import_individuals(store, content, import_mode)


def _finish_report(report: ImportReport) -> None:
    if report.total_rows == 0:
        raise CsvFormatError("CSV file contains no data rows")

    logger.info(
        f"Imported {report.import_type} ({report.import_mode}): {report.summary} "
        f"[imported={report.imported}, updated={report.updated}, skipped={report.skipped}, "
        f"errors={len(report.errors)}]"
    )
