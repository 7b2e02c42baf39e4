"""
Variable-width LZW codec for GIF pixel-index streams.

Codes start at ``min_code_size + 1`` bits and grow one bit each time the
code table fills the current width, up to 12 bits (4096 entries).  Two
special codes follow the literal range:

    clear = 1 << min_code_size     reset the table and the code width
    eoi   = clear + 1              end of the frame's data

Compressed data travels inside length-prefixed sub-blocks of at most 255
bytes, terminated by a zero-length block.  ``pack_sub_blocks`` and
``read_sub_blocks`` handle that framing; ``encode`` and ``decode`` work on
the reassembled byte string only.

This module has no imaging dependencies: input and output are plain
byte strings of palette indices.
"""

from __future__ import annotations

import logging

from gifsig.exceptions import FormatError

logger = logging.getLogger(__name__)

MAX_CODE_BITS = 12
MAX_CODES = 1 << MAX_CODE_BITS
SUB_BLOCK_SIZE = 255


def min_code_size_for(palette_size: int) -> int:
    """Smallest legal LZW minimum code size for a palette of this size."""
    return max(2, (max(palette_size, 2) - 1).bit_length())


# ---------------------------------------------------------------------------
# Compression
# ---------------------------------------------------------------------------

def encode(indices: bytes | bytearray | memoryview, min_code_size: int) -> bytes:
    """LZW-compress a flat run of palette indices.

    The stream opens with a clear code, and a new clear code is emitted
    whenever the table reaches 4096 entries.  The result is not yet split
    into sub-blocks.
    """
    if not 2 <= min_code_size <= 8:
        raise ValueError(f"min_code_size must be 2..8, got {min_code_size}")
    data = bytes(indices)
    clear = 1 << min_code_size
    eoi = clear + 1
    if data and max(data) >= clear:
        raise ValueError(
            f"index {max(data)} does not fit min_code_size {min_code_size}"
        )

    out = bytearray()
    code_size = min_code_size + 1
    bits = clear
    nbits = code_size

    if not data:
        bits |= eoi << nbits
        nbits += code_size
        while nbits > 0:
            out.append(bits & 0xFF)
            bits >>= 8
            nbits -= 8
        return bytes(out)

    table: dict[int, int] = {}
    next_code = eoi + 1
    prefix = data[0]

    for k in data[1:]:
        key = (prefix << 8) | k
        code = table.get(key)
        if code is not None:
            prefix = code
            continue

        bits |= prefix << nbits
        nbits += code_size
        while nbits >= 8:
            out.append(bits & 0xFF)
            bits >>= 8
            nbits -= 8

        if next_code < MAX_CODES:
            table[key] = next_code
            next_code += 1
            if next_code > (1 << code_size) and code_size < MAX_CODE_BITS:
                code_size += 1
        else:
            bits |= clear << nbits
            nbits += code_size
            while nbits >= 8:
                out.append(bits & 0xFF)
                bits >>= 8
                nbits -= 8
            table.clear()
            next_code = eoi + 1
            code_size = min_code_size + 1
        prefix = k

    for code in (prefix, eoi):
        bits |= code << nbits
        nbits += code_size
        while nbits >= 8:
            out.append(bits & 0xFF)
            bits >>= 8
            nbits -= 8
    if nbits > 0:
        out.append(bits & 0xFF)
    return bytes(out)


# ---------------------------------------------------------------------------
# Decompression
# ---------------------------------------------------------------------------

def decode(data: bytes | bytearray | memoryview, min_code_size: int,
           pixel_count: int) -> bytearray:
    """Decompress LZW data into exactly *pixel_count* palette indices.

    Decoding stops at the End-of-Information code, or as soon as enough
    pixels have been produced.  Data that runs out early is padded with
    index 0 and logged; an impossible code raises ``FormatError``.
    """
    if not 2 <= min_code_size <= 11:
        raise FormatError(
            f"LZW minimum code size {min_code_size} out of range", "InvalidCode"
        )
    clear = 1 << min_code_size
    eoi = clear + 1
    table: list[bytes] = [bytes((i,)) for i in range(clear)] + [b"", b""]
    next_code = eoi + 1
    code_size = min_code_size + 1
    prev: bytes | None = None

    out = bytearray()
    pos = 0
    n = len(data)
    bits = 0
    nbits = 0
    exhausted = False

    while len(out) < pixel_count:
        while nbits < code_size:
            if pos >= n:
                exhausted = True
                break
            bits |= data[pos] << nbits
            pos += 1
            nbits += 8
        if exhausted:
            break
        code = bits & ((1 << code_size) - 1)
        bits >>= code_size
        nbits -= code_size

        if code == clear:
            del table[eoi + 1:]
            next_code = eoi + 1
            code_size = min_code_size + 1
            prev = None
            continue
        if code == eoi:
            break

        if prev is None:
            if code >= clear:
                raise FormatError(f"code {code} before any table entry", "InvalidCode")
            entry = table[code]
        elif code < next_code:
            entry = table[code]
            if next_code < MAX_CODES:
                table.append(prev + entry[:1])
                next_code += 1
        elif code == next_code:
            entry = prev + prev[:1]
            table.append(entry)
            next_code += 1
        else:
            raise FormatError(
                f"code {code} beyond table size {next_code}", "InvalidCode"
            )

        if next_code == (1 << code_size) and code_size < MAX_CODE_BITS:
            code_size += 1
        out += entry
        prev = entry

    if len(out) < pixel_count:
        logger.warning(
            "LZW data ended after %d of %d pixels; padding with index 0",
            len(out), pixel_count,
        )
        out.extend(bytes(pixel_count - len(out)))
    elif len(out) > pixel_count:
        del out[pixel_count:]
    return out


# ---------------------------------------------------------------------------
# Sub-block framing
# ---------------------------------------------------------------------------

def pack_sub_blocks(data: bytes) -> bytes:
    """Split *data* into length-prefixed sub-blocks plus a terminator."""
    out = bytearray()
    for start in range(0, len(data), SUB_BLOCK_SIZE):
        chunk = data[start:start + SUB_BLOCK_SIZE]
        out.append(len(chunk))
        out += chunk
    out.append(0)
    return bytes(out)


def read_sub_blocks(buf: bytes | memoryview, pos: int) -> tuple[bytes, int]:
    """Reassemble the sub-block chain starting at *pos*.

    Returns the joined payload and the offset just past the terminator.
    """
    chunks: list[bytes] = []
    n = len(buf)
    while True:
        if pos >= n:
            raise FormatError(f"sub-block chain unterminated at offset {pos}",
                              "Truncated")
        length = buf[pos]
        pos += 1
        if length == 0:
            return b"".join(chunks), pos
        end = pos + length
        if end > n:
            raise FormatError(
                f"sub-block of {length} bytes at offset {pos - 1} runs past "
                f"end of data", "Truncated",
            )
        chunks.append(bytes(buf[pos:end]))
        pos = end
