"""Move binary-format reader.

Only the tables needed to name a compiled module and count its declarations are
decoded: module handles, address identifiers, identifiers, signatures, function
handles and struct definitions. Function bodies are never parsed; the number of
defined functions is taken as the number of function handles owned by the
module itself.

Layout (all indices and lengths are ULEB128 unless stated):

    magic      4 bytes   A1 1C EB 0B
    version    u32 LE    low 24 bits; the high byte carries the binary flavor
    tables     count, then (kind: u8, offset, length) per table
    contents   table bodies, offsets relative to the end of the directory
    self_idx   self module handle index (version >= 5)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from move_web_compiler.constants import ADDRESS_LENGTH
from move_web_compiler.errors import BytecodeFormatError

MOVE_MAGIC = b"\xa1\x1c\xeb\x0b"
VERSION_MASK = 0x00FF_FFFF
# First version that stores the self module handle index after the tables
SELF_HANDLE_MIN_VERSION = 5


class TableKind(IntEnum):
    MODULE_HANDLES = 0x1
    DATATYPE_HANDLES = 0x2
    FUNCTION_HANDLES = 0x3
    FUNCTION_INST = 0x4
    SIGNATURES = 0x5
    CONSTANT_POOL = 0x6
    IDENTIFIERS = 0x7
    ADDRESS_IDENTIFIERS = 0x8
    STRUCT_DEFS = 0xA
    STRUCT_DEF_INST = 0xB
    FUNCTION_DEFS = 0xC
    FIELD_HANDLES = 0xD
    FIELD_INST = 0xE
    FRIEND_DECLS = 0xF
    METADATA = 0x10


class SignatureTokenKind(IntEnum):
    BOOL = 0x1
    U8 = 0x2
    U64 = 0x3
    U128 = 0x4
    ADDRESS = 0x5
    REFERENCE = 0x6
    MUTABLE_REFERENCE = 0x7
    DATATYPE = 0x8
    TYPE_PARAMETER = 0x9
    VECTOR = 0xA
    DATATYPE_INST = 0xB
    SIGNER = 0xC
    U16 = 0xD
    U32 = 0xE
    U256 = 0xF


_LEAF_TOKENS = frozenset(
    {
        SignatureTokenKind.BOOL,
        SignatureTokenKind.U8,
        SignatureTokenKind.U16,
        SignatureTokenKind.U32,
        SignatureTokenKind.U64,
        SignatureTokenKind.U128,
        SignatureTokenKind.U256,
        SignatureTokenKind.ADDRESS,
        SignatureTokenKind.SIGNER,
    }
)
_WRAPPER_TOKENS = frozenset(
    {SignatureTokenKind.REFERENCE, SignatureTokenKind.MUTABLE_REFERENCE, SignatureTokenKind.VECTOR}
)

FIELD_INFO_NATIVE = 0x1
FIELD_INFO_DECLARED = 0x2


@dataclass(frozen=True)
class ModuleSummary:
    """Identity and declaration counts of one compiled module."""

    address: str
    name: str
    function_defs: int = 0
    struct_defs: int = 0
    signatures: int = 0
    identifiers: int = 0
    # (address, name) of every other module this one references
    dependencies: tuple[tuple[str, str], ...] = field(default_factory=tuple)


class _Cursor:
    def __init__(self, data: bytes, start: int = 0, end: int | None = None) -> None:
        self.data = data
        self.pos = start
        self.end = len(data) if end is None else end

    def at_end(self) -> bool:
        return self.pos >= self.end

    def read_bytes(self, n: int) -> bytes:
        if n < 0 or self.pos + n > self.end:
            raise BytecodeFormatError(f"Unexpected end of data at offset {self.pos} (wanted {n} bytes)")
        chunk = self.data[self.pos : self.pos + n]
        self.pos += n
        return chunk

    def read_u8(self) -> int:
        return self.read_bytes(1)[0]

    def read_u32(self) -> int:
        return int.from_bytes(self.read_bytes(4), "little")

    def read_uleb128(self) -> int:
        value = 0
        shift = 0
        while True:
            byte = self.read_u8()
            value |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return value
            shift += 7
            if shift > 63:
                raise BytecodeFormatError(f"ULEB128 value too long at offset {self.pos}")


def _skip_signature_token(cur: _Cursor, depth: int = 0) -> None:
    if depth > 256:
        raise BytecodeFormatError("Signature token nesting too deep")
    tag = cur.read_u8()
    if tag in _LEAF_TOKENS:
        return
    if tag in _WRAPPER_TOKENS:
        _skip_signature_token(cur, depth + 1)
    elif tag in (SignatureTokenKind.DATATYPE, SignatureTokenKind.TYPE_PARAMETER):
        cur.read_uleb128()
    elif tag == SignatureTokenKind.DATATYPE_INST:
        cur.read_uleb128()
        for _ in range(cur.read_uleb128()):
            _skip_signature_token(cur, depth + 1)
    else:
        raise BytecodeFormatError(f"Unknown signature token 0x{tag:02x}")


def _count_entries(cur: _Cursor, read_entry) -> int:
    n = 0
    while not cur.at_end():
        read_entry(cur)
        n += 1
    return n


def _read_identifier(cur: _Cursor) -> str:
    raw = cur.read_bytes(cur.read_uleb128())
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise BytecodeFormatError(f"Identifier is not valid UTF-8: {e}") from e


def _read_signature(cur: _Cursor) -> None:
    for _ in range(cur.read_uleb128()):
        _skip_signature_token(cur)


def _read_struct_def(cur: _Cursor) -> None:
    cur.read_uleb128()  # datatype handle
    info = cur.read_u8()
    if info == FIELD_INFO_NATIVE:
        return
    if info != FIELD_INFO_DECLARED:
        raise BytecodeFormatError(f"Unknown struct field info 0x{info:02x}")
    for _ in range(cur.read_uleb128()):
        cur.read_uleb128()  # field name
        _skip_signature_token(cur)


def _read_function_handle(cur: _Cursor) -> int:
    module = cur.read_uleb128()
    cur.read_uleb128()  # name
    cur.read_uleb128()  # parameters
    cur.read_uleb128()  # return
    for _ in range(cur.read_uleb128()):
        cur.read_u8()  # type parameter abilities
    return module


def read_module_summary(data: bytes) -> ModuleSummary:
    """
    Summarise one serialized Move module.

    Raises:
        BytecodeFormatError: If the bytes are not a readable Move module.
    """
    cur = _Cursor(data)
    if cur.read_bytes(4) != MOVE_MAGIC:
        raise BytecodeFormatError("Bad magic: not a Move binary module")
    version = cur.read_u32() & VERSION_MASK

    directory: dict[int, tuple[int, int]] = {}
    for _ in range(cur.read_uleb128()):
        kind = cur.read_u8()
        offset = cur.read_uleb128()
        length = cur.read_uleb128()
        if kind in directory:
            raise BytecodeFormatError(f"Duplicate table 0x{kind:02x}")
        directory[kind] = (offset, length)

    base = cur.pos
    tables_end = base + max((off + ln for off, ln in directory.values()), default=0)
    if tables_end > len(data):
        raise BytecodeFormatError("Table directory points past end of module")

    def table(kind: TableKind) -> _Cursor:
        off, ln = directory.get(kind, (0, 0))
        return _Cursor(data, base + off, base + off + ln)

    self_idx = 0
    if version >= SELF_HANDLE_MIN_VERSION:
        self_idx = _Cursor(data, tables_end).read_uleb128()

    identifiers: list[str] = []
    id_cur = table(TableKind.IDENTIFIERS)
    while not id_cur.at_end():
        identifiers.append(_read_identifier(id_cur))

    addr_cur = table(TableKind.ADDRESS_IDENTIFIERS)
    addresses: list[str] = []
    while not addr_cur.at_end():
        addresses.append("0x" + addr_cur.read_bytes(ADDRESS_LENGTH).hex())

    handles: list[tuple[str, str]] = []
    mh_cur = table(TableKind.MODULE_HANDLES)
    while not mh_cur.at_end():
        addr_idx = mh_cur.read_uleb128()
        name_idx = mh_cur.read_uleb128()
        if addr_idx >= len(addresses) or name_idx >= len(identifiers):
            raise BytecodeFormatError("Module handle index out of bounds")
        handles.append((addresses[addr_idx], identifiers[name_idx]))
    if self_idx >= len(handles):
        raise BytecodeFormatError(f"Self module handle {self_idx} out of bounds")

    fh_cur = table(TableKind.FUNCTION_HANDLES)
    own_functions = 0
    while not fh_cur.at_end():
        if _read_function_handle(fh_cur) == self_idx:
            own_functions += 1

    address, name = handles[self_idx]
    return ModuleSummary(
        address=address,
        name=name,
        function_defs=own_functions,
        struct_defs=_count_entries(table(TableKind.STRUCT_DEFS), _read_struct_def),
        signatures=_count_entries(table(TableKind.SIGNATURES), _read_signature),
        identifiers=len(identifiers),
        dependencies=tuple(h for i, h in enumerate(handles) if i != self_idx),
    )
