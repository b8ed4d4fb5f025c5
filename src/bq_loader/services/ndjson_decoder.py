"""Streaming NDJSON decoder.

Turns raw byte chunks, split at arbitrary boundaries, into an ordered lazy
sequence of `Record` and `ParseFailure` items. Line numbers are 1-based and
count every physical line, blank ones included, so they always point back
into the source object regardless of how the bytes were chunked.
"""

import codecs
import json
import logging
import math
from datetime import datetime, timezone
from typing import Iterable, Iterator

from bq_loader.models.records import DecodedItem, ParseFailure, Record, canonical_size

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\n"


def _reject_constant(name: str):
    # json.loads accepts NaN and Infinity, which are not valid JSON text
    raise ValueError(f"Invalid JSON literal: {name}")


def _parse_finite_float(text: str) -> float:
    # 1e400 is valid JSON text but overflows to inf, which cannot be sent back out
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range: {text}")
    return value


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decode_line(line: str, line_number: int, stamp_field: str | None = None) -> DecodedItem:
    """
    Parse a single non-blank line.

    Args:
        line: Raw line text without its terminator.
        line_number: 1-based position of the line in the source.
        stamp_field: If set, JSON objects missing this key get it filled
            with the current UTC time.

    Returns:
        Record on success, ParseFailure otherwise.
    """
    try:
        value = json.loads(line, parse_constant=_reject_constant, parse_float=_parse_finite_float)
    except (ValueError, RecursionError) as e:
        return ParseFailure(raw_line=line, line_number=line_number, message=str(e))

    if stamp_field and isinstance(value, dict) and stamp_field not in value:
        value[stamp_field] = _utc_timestamp()

    return Record(value=value, byte_size=canonical_size(value), line_number=line_number)


def decode_ndjson(
    chunks: Iterable[bytes],
    stamp_field: str | None = None,
) -> Iterator[DecodedItem]:
    """
    Decode a stream of byte chunks into records and parse failures.

    The trailing fragment of each chunk is carried over until its terminator
    arrives, and multi-byte characters split across chunks are reassembled by
    the incremental decoder. Invalid UTF-8 is replaced rather than raised.
    A malformed line never stops the sequence.

    Args:
        chunks: Raw bytes in source order.
        stamp_field: Optional key stamped onto objects that lack it.

    Yields:
        Record or ParseFailure, in input order.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    line_number = 0
    first_logged = False

    def emit(line: str) -> DecodedItem:
        nonlocal first_logged
        item = decode_line(line, line_number, stamp_field)
        if isinstance(item, ParseFailure):
            logger.warning("Malformed JSON at line %d: %s", item.line_number, item.message)
        elif not first_logged:
            logger.debug("First row (line %d): %s", item.line_number, line[:500])
            first_logged = True
        return item

    for chunk in chunks:
        text = decoder.decode(chunk)
        if LINE_TERMINATOR not in text:
            buffer += text
            continue

        *lines, buffer = (buffer + text).split(LINE_TERMINATOR)
        for line in lines:
            line_number += 1
            if line.strip():
                yield emit(line)

    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        line_number += 1
        yield emit(buffer)
