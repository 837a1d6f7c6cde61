"""
Text recovery from the `message.attributedBody` column.

macOS Ventura+ often leaves `message.text` NULL and stores the content
only as an archived NSAttributedString. Two encodings show up in practice:
binary plists (NSKeyedArchiver) and the older "streamtyped" typedstream.
"""

import logging
import plistlib
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Bytes that terminate the NSString payload in a typedstream
_STREAM_TERMINATORS = (0x86, 0x84, 0x00)

_METADATA_MARKERS = (
    'NSString', 'NSObject', 'NSMutable', 'NSDictionary',
    'NSAttributed', 'streamtyped', '__kIM', 'NSNumber', 'NSValue',
)


def _from_keyed_archive(blob: bytes) -> Optional[str]:
    bplist_start = blob.find(b'bplist')
    if bplist_start == -1:
        return None

    try:
        plist = plistlib.loads(blob[bplist_start:])
    except Exception as e:
        logger.debug(f"Failed to parse attributedBody plist: {e}")
        return None

    if not isinstance(plist, dict):
        return None

    for obj in plist.get('$objects', []):
        if isinstance(obj, str) and obj.strip() and not obj.startswith(('NS', '$')):
            return obj.strip()
        if isinstance(obj, dict) and 'NS.string' in obj:
            text = obj['NS.string']
            if isinstance(text, str) and text.strip():
                return text.strip()
    return None


def _from_typedstream(blob: bytes) -> Optional[str]:
    # NSString marker, a few control bytes, '+', one length byte, then text
    marker = blob.find(b'NSString')
    if marker == -1:
        return None

    plus_idx = blob.find(b'+', marker)
    if plus_idx == -1 or plus_idx > marker + 20:
        return None

    start = plus_idx + 2
    end = start
    while end < len(blob) and blob[end] not in _STREAM_TERMINATORS:
        end += 1

    text = blob[start:end].decode('utf-8', errors='ignore').strip()
    return text or None


def _longest_printable_run(blob: bytes) -> Optional[str]:
    decoded = blob.decode('utf-8', errors='ignore')
    for run in re.findall(r'[^\x00-\x1f\x7f-\x9f]{3,}', decoded):
        if any(marker in run for marker in _METADATA_MARKERS):
            continue
        cleaned = run.strip('+').strip()
        if len(cleaned) >= 2:
            return cleaned
    return None


def extract_text(blob: Optional[bytes]) -> Optional[str]:
    """
    Extract readable text from an attributedBody blob.

    Tries the keyed-archive form, then the typedstream form, then the
    first printable run that is not archiver metadata.

    Args:
        blob: Raw bytes from the attributedBody column

    Returns:
        Extracted text or None
    """
    if not blob:
        return None
    return (
        _from_keyed_archive(blob)
        or _from_typedstream(blob)
        or _longest_printable_run(blob)
    )
