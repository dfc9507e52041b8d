"""
Decoding of log objects written by the collector

Objects are gzip-compressed when the key ends in ``.gz`` and hold either a
JSON document (array or single object) or newline-delimited JSON.
"""

import gzip
import json
import logging
import zlib
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from log_processor.errors import MalformedObjectError

logger = logging.getLogger(__name__)

# Number of malformed lines logged individually per object
MAX_LOGGED_PARSE_ERRORS = 3


@dataclass
class DecodeStats:
    """Counters filled in while an object's records are consumed"""
    format: str = 'unknown'
    lines: int = 0
    records: int = 0
    malformed_lines: int = 0


def decompress(content: bytes, filename: str) -> bytes:
    """
    Decompress content when the filename says it is gzip-encoded

    Raises:
        MalformedObjectError: If a .gz object is not valid gzip data
    """
    if not filename.endswith('.gz'):
        return content
    try:
        decompressed = gzip.decompress(content)
    except (OSError, EOFError, zlib.error) as e:
        raise MalformedObjectError(f"Failed to decompress {filename}: {str(e)}")
    logger.debug(f"Decompressed {filename}: {len(content)} -> {len(decompressed)} bytes")
    return decompressed


def iter_raw_records(text: str, stats: Optional[DecodeStats] = None) -> Iterator[Any]:
    """
    Yield raw records from decoded text

    The whole text is first parsed as one JSON value; a list yields each
    element and anything else yields itself. If that fails the text is read
    as NDJSON, skipping (and counting) lines that do not parse.
    """
    if stats is None:
        stats = DecodeStats()

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
        whole_document = False
    else:
        whole_document = True

    if whole_document:
        if isinstance(data, list):
            stats.format = 'json-array'
            for record in data:
                stats.records += 1
                yield record
        else:
            stats.format = 'json-object'
            stats.records += 1
            yield data
        return

    stats.format = 'ndjson'
    for line_num, line in enumerate(text.split('\n')):
        line = line.strip()
        if not line:
            continue
        stats.lines += 1
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            stats.malformed_lines += 1
            if stats.malformed_lines <= MAX_LOGGED_PARSE_ERRORS:
                logger.warning(f"Line {line_num} JSON parse error: {str(e)}, content: {line[:100]}...")
            continue
        stats.records += 1
        yield record


def decode_object(content: bytes, filename: str, stats: Optional[DecodeStats] = None) -> Iterator[Any]:
    """
    Decompress and parse an object into raw records

    Args:
        content: Object bytes as stored
        filename: Object key or file name; a ``.gz`` suffix means gzip
        stats: Optional counters updated as records are consumed

    Returns:
        Lazy iterator over raw records

    Raises:
        MalformedObjectError: If the object is not valid gzip or UTF-8
    """
    data = decompress(content, filename)
    try:
        text = data.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise MalformedObjectError(f"Object {filename} is not valid UTF-8: {str(e)}")
    return iter_raw_records(text, stats)
