from .batcher import iter_batches
from .credentials import TokenProvider, build_assertion
from .gzip_reader import gunzip_chunks
from .inserter import Inserter, reconcile
from .ndjson_decoder import decode_line, decode_ndjson
from .source_reader import SourceReader

__all__ = [
    "iter_batches",
    "TokenProvider",
    "build_assertion",
    "gunzip_chunks",
    "Inserter",
    "reconcile",
    "decode_line",
    "decode_ndjson",
    "SourceReader",
]
