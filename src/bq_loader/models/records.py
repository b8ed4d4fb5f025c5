"""In-flight pipeline items: decoded records, parse failures and batches."""

import json
from dataclasses import dataclass, field
from typing import Any, Iterator, Union

# Any value json.loads can return: dict, list, str, int, float, bool or None
JsonValue = Any


def canonical_size(value: JsonValue) -> int:
    """Return the UTF-8 byte length of the compact JSON re-serialization."""
    return len(json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


@dataclass(frozen=True)
class Record:
    """A successfully decoded NDJSON line."""

    value: JsonValue
    byte_size: int
    line_number: int


@dataclass(frozen=True)
class ParseFailure:
    """A non-blank line that is not valid JSON text."""

    raw_line: str
    line_number: int
    message: str


DecodedItem = Union[Record, ParseFailure]


@dataclass
class Batch:
    """Ordered group of records sent in a single insert request."""

    records: list[Record] = field(default_factory=list)
    total_bytes: int = 0

    def append(self, record: Record) -> None:
        self.records.append(record)
        self.total_bytes += record.byte_size

    def line_number_at(self, index: int) -> int | None:
        """Map a zero-based position within the batch to its source line."""
        if 0 <= index < len(self.records):
            return self.records[index].line_number
        return None

    def rows(self) -> list[dict]:
        """Row payloads in insertAll shape."""
        return [{"json": record.value} for record in self.records]

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)
