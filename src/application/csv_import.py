from __future__ import annotations

import csv
import io
import logging
import re
from typing import IO, Any, Iterator

from pydantic import ValidationError

from domain.schemas import TransactionCreate

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("type", "category", "amount", "description", "date")

# Bytes that are not valid UTF-8 decode to lone surrogates under surrogateescape.
_UNDECODABLE_RE = re.compile("[\udc80-\udcff]")


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def _normalize(row: dict[str | None, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            # Extra cells beyond the header.
            continue
        name = key.strip().lower()
        text = value.strip() if isinstance(value, str) else value
        if name in ("type", "category") and isinstance(text, str):
            text = text.lower()
        if text == "" and name in ("description", "date"):
            continue
        cleaned[name] = text
    return cleaned


def iter_csv_rows(stream: IO[bytes]) -> Iterator[tuple[int, TransactionCreate | None, str | None]]:
    """
    Decode an uploaded CSV one row at a time.

    Yields (row_number, parsed, error) where exactly one of parsed/error is set.
    Row numbers count data rows from 1.
    """
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", errors="surrogateescape", newline="")
    try:
        reader = csv.DictReader(text)
        for index, row in enumerate(reader, start=1):
            fields = _normalize(row)
            if not any(fields.values()):
                continue
            if any(isinstance(value, str) and _UNDECODABLE_RE.search(value) for value in fields.values()):
                yield index, None, f"Row {index}: not valid UTF-8 text"
                continue
            try:
                yield index, TransactionCreate.model_validate(
                    {column: fields[column] for column in CSV_COLUMNS if column in fields}
                ), None
            except ValidationError as exc:
                yield index, None, f"Row {index}: {_describe(exc)}"
    finally:
        # Leave the underlying upload open for its owner to close.
        text.detach()


def parse_csv(stream: IO[bytes]) -> tuple[list[TransactionCreate], list[str]]:
    valid: list[TransactionCreate] = []
    errors: list[str] = []
    for _, parsed, error in iter_csv_rows(stream):
        if parsed is not None:
            valid.append(parsed)
        elif error is not None:
            errors.append(error)
    logger.info("CSV parsed valid_rows=%d invalid_rows=%d", len(valid), len(errors))
    return valid, errors
