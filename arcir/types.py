"""Data types, typed values and the type rules of the IR."""

from __future__ import annotations

import dataclasses
import enum
import math
import struct
from dataclasses import dataclass, field
from typing import Any, List, Optional


class DataType(enum.Enum):
    """Kinds of data an IR value can hold."""

    VOID = enum.auto()
    BOOL = enum.auto()
    INT8 = enum.auto()
    INT16 = enum.auto()
    INT32 = enum.auto()
    INT64 = enum.auto()
    UINT8 = enum.auto()
    UINT16 = enum.auto()
    UINT32 = enum.auto()
    UINT64 = enum.auto()
    FLOAT32 = enum.auto()
    FLOAT64 = enum.auto()
    POINTER = enum.auto()
    ARRAY = enum.auto()
    STRUCT = enum.auto()
    FUNCTION = enum.auto()
    VECTOR = enum.auto()


class NodeType(enum.Enum):
    """Operations an IR node can represent."""

    ENTRY = enum.auto()
    EXIT = enum.auto()
    PARAM = enum.auto()
    LIT = enum.auto()
    ADD = enum.auto()
    SUB = enum.auto()
    MUL = enum.auto()
    DIV = enum.auto()
    MOD = enum.auto()
    GT = enum.auto()
    GTE = enum.auto()
    LT = enum.auto()
    LTE = enum.auto()
    EQ = enum.auto()
    NEQ = enum.auto()
    BAND = enum.auto()
    BOR = enum.auto()
    BXOR = enum.auto()
    BNOT = enum.auto()
    BSHL = enum.auto()
    BSHR = enum.auto()
    RET = enum.auto()
    FUNCTION = enum.auto()
    CALL = enum.auto()
    INVOKE = enum.auto()
    BRANCH = enum.auto()
    JUMP = enum.auto()
    ALLOC = enum.auto()
    LOAD = enum.auto()
    STORE = enum.auto()
    PTR_LOAD = enum.auto()
    PTR_STORE = enum.auto()
    ADDR_OF = enum.auto()
    PTR_ADD = enum.auto()
    ACCESS = enum.auto()
    CAST = enum.auto()
    FROM = enum.auto()
    ATOMIC_LOAD = enum.auto()
    ATOMIC_STORE = enum.auto()
    ATOMIC_CAS = enum.auto()
    VECTOR_BUILD = enum.auto()
    VECTOR_EXTRACT = enum.auto()
    VECTOR_SPLAT = enum.auto()


class NodeTraits(enum.Flag):
    """Extra properties attached to a node."""

    NONE = 0
    VOLATILE = enum.auto()
    EXPORT = enum.auto()
    EXTERN = enum.auto()
    READONLY = enum.auto()
    CONSTANT = enum.auto()


class AtomicOrdering(enum.IntEnum):
    """Memory ordering of an atomic operation."""

    RELAXED = 0
    ACQUIRE = 1
    RELEASE = 2
    ACQ_REL = 3
    SEQ_CST = 4


class PtrQualifier(enum.Flag):
    """Qualifiers that may be attached to a pointer type."""

    NONE = 0
    CONST = enum.auto()
    VOLATILE = enum.auto()
    RESTRICT = enum.auto()
    WRITEONLY = enum.auto()
    NOMUTABLE = enum.auto()


@dataclass
class PointerData:
    """Pointer type information; ``pointee`` is a node or None for forward refs."""

    pointee: Any = None
    addr_space: int = 0
    qualifier: PtrQualifier = PtrQualifier.NONE


@dataclass
class VectorData:
    elem_type: DataType = DataType.VOID
    lane_count: int = 0


@dataclass
class ArrayData:
    elements: List[Any] = field(default_factory=list)
    elem_type: DataType = DataType.VOID


@dataclass
class StructField:
    name: int
    kind: DataType
    data: "TypedData"


@dataclass
class StructData:
    fields: List[StructField] = field(default_factory=list)
    alignment: int = 1
    name: int = 0


@dataclass
class FunctionData:
    return_type: Optional["TypedData"] = None


_INT_RANGES = {
    DataType.INT8: (-(2**7), 2**7 - 1),
    DataType.INT16: (-(2**15), 2**15 - 1),
    DataType.INT32: (-(2**31), 2**31 - 1),
    DataType.INT64: (-(2**63), 2**63 - 1),
    DataType.UINT8: (0, 2**8 - 1),
    DataType.UINT16: (0, 2**16 - 1),
    DataType.UINT32: (0, 2**32 - 1),
    DataType.UINT64: (0, 2**64 - 1),
}

_AGGREGATE_CLASSES = {
    DataType.POINTER: PointerData,
    DataType.VECTOR: VectorData,
    DataType.ARRAY: ArrayData,
    DataType.STRUCT: StructData,
    DataType.FUNCTION: FunctionData,
}


def _to_float32(number: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", number))[0]
    except OverflowError:
        return math.copysign(math.inf, number)


def _check_value(kind: DataType, value: Any) -> Any:
    """Validate ``value`` for ``kind`` and return it in canonical form."""
    if kind is DataType.VOID:
        if value is not None:
            raise TypeError("VOID data cannot hold a value")
        return None
    if kind is DataType.BOOL:
        if not isinstance(value, bool):
            raise TypeError(f"BOOL requires a bool, got {type(value).__name__}")
        return value
    if kind in _INT_RANGES:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{kind.name} requires an int, got {type(value).__name__}")
        low, high = _INT_RANGES[kind]
        if not low <= value <= high:
            raise ValueError(f"{value} does not fit in {kind.name}")
        return value
    if kind in (DataType.FLOAT32, DataType.FLOAT64):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{kind.name} requires a number, got {type(value).__name__}")
        number = float(value)
        return _to_float32(number) if kind is DataType.FLOAT32 else number
    expected = _AGGREGATE_CLASSES[kind]
    if not isinstance(value, expected):
        raise TypeError(f"{kind.name} requires {expected.__name__}, got {type(value).__name__}")
    if kind is DataType.FUNCTION and value.return_type is not None:
        if not isinstance(value.return_type, TypedData):
            raise TypeError("function return type must be TypedData or None")
    return value


def _copy_value(value: Any) -> Any:
    if isinstance(value, TypedData):
        return value.copy()
    if isinstance(value, FunctionData):
        ret = value.return_type.copy() if value.return_type is not None else None
        return FunctionData(return_type=ret)
    if isinstance(value, StructData):
        fields = [StructField(f.name, f.kind, f.data.copy()) for f in value.fields]
        return StructData(fields=fields, alignment=value.alignment, name=value.name)
    if isinstance(value, ArrayData):
        return ArrayData(elements=[_copy_value(e) for e in value.elements], elem_type=value.elem_type)
    if isinstance(value, (PointerData, VectorData)):
        return dataclasses.replace(value)
    return value


class TypedData:
    """A value tagged with its data type."""

    def __init__(self, kind: DataType = DataType.VOID, value: Any = None) -> None:
        self._kind = DataType.VOID
        self._value: Any = None
        if kind is not DataType.VOID:
            if value is None:
                self.reset(kind)
            else:
                self.set(kind, value)
        elif value is not None:
            raise TypeError("VOID data cannot hold a value")

    @property
    def kind(self) -> DataType:
        return self._kind

    @property
    def value(self) -> Any:
        return self._value

    def set(self, kind: DataType, value: Any) -> None:
        """Replace the held value with ``value`` of type ``kind``."""
        checked = _check_value(kind, value)
        self._kind = kind
        self._value = checked

    def get(self, kind: DataType) -> Any:
        """Return the held value, which must be of type ``kind``."""
        if self._kind is not kind:
            raise TypeError(f"data holds {self._kind.name}, not {kind.name}")
        return self._value

    def reset(self, kind: DataType) -> None:
        """Set the held value to the default of ``kind``."""
        self.set(kind, default_value(kind))

    def copy(self) -> "TypedData":
        """Return an independent copy; pointee nodes are shared, not copied."""
        clone = TypedData()
        clone._kind = self._kind
        clone._value = _copy_value(self._value)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypedData):
            return NotImplemented
        return self._kind is other._kind and self._value == other._value

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TypedData({self._kind.name}, {self._value!r})"


_SIGNED = frozenset({DataType.INT8, DataType.INT16, DataType.INT32, DataType.INT64})
_UNSIGNED = frozenset({DataType.UINT8, DataType.UINT16, DataType.UINT32, DataType.UINT64})
_RANKS = {
    DataType.INT8: 0, DataType.UINT8: 0,
    DataType.INT16: 1, DataType.UINT16: 1,
    DataType.INT32: 2, DataType.UINT32: 2,
    DataType.INT64: 3, DataType.UINT64: 3,
}
_SIGNED_BY_RANK = [DataType.INT8, DataType.INT16, DataType.INT32, DataType.INT64]
_UNSIGNED_BY_RANK = [DataType.UINT8, DataType.UINT16, DataType.UINT32, DataType.UINT64]


def is_integer_t(kind: DataType) -> bool:
    return kind in _RANKS


def is_float_t(kind: DataType) -> bool:
    return kind in (DataType.FLOAT32, DataType.FLOAT64)


def is_signed_integer_t(kind: DataType) -> bool:
    return kind in _SIGNED


def is_unsigned_integer_t(kind: DataType) -> bool:
    return kind in _UNSIGNED


def get_integer_rank(kind: DataType) -> int:
    """Size rank of an integer type, or -1 for anything else."""
    return _RANKS.get(kind, -1)


def default_value(kind: DataType) -> Any:
    """A fresh default value for ``kind``."""
    if kind is DataType.VOID:
        return None
    if kind is DataType.BOOL:
        return False
    if kind in _INT_RANGES:
        return 0
    if kind in (DataType.FLOAT32, DataType.FLOAT64):
        return 0.0
    if kind is DataType.POINTER:
        return PointerData(pointee=None, addr_space=0)
    if kind is DataType.ARRAY:
        return ArrayData(elements=[], elem_type=DataType.VOID)
    if kind is DataType.STRUCT:
        return StructData(fields=[], alignment=1, name=0)
    if kind is DataType.FUNCTION:
        return FunctionData(return_type=TypedData())
    if kind is DataType.VECTOR:
        return VectorData(elem_type=DataType.VOID, lane_count=0)
    raise ValueError(f"unsupported data type {kind!r}")


def set_t(data: TypedData, kind: DataType) -> None:
    """Set ``data`` to the default value of ``kind``."""
    data.reset(kind)


_SIZES = {
    DataType.BOOL: 1, DataType.INT8: 1, DataType.UINT8: 1,
    DataType.INT16: 2, DataType.UINT16: 2,
    DataType.INT32: 4, DataType.UINT32: 4, DataType.FLOAT32: 4,
    DataType.INT64: 8, DataType.UINT64: 8, DataType.FLOAT64: 8, DataType.POINTER: 8,
}


def elem_sz(kind: DataType) -> int:
    """Size in bytes of a scalar type; 0 for VOID and aggregates."""
    return _SIZES.get(kind, 0)


def align_t(kind: DataType) -> int:
    """Alignment in bytes of a scalar type; 1 for VOID and aggregates."""
    return _SIZES.get(kind, 1)


def padding_t(padding_size: int) -> DataType:
    """The widest unsigned type no larger than ``padding_size`` (at least UINT8)."""
    if padding_size >= 8:
        return DataType.UINT64
    if padding_size >= 4:
        return DataType.UINT32
    if padding_size >= 2:
        return DataType.UINT16
    return DataType.UINT8


def compute_struct_size(struct_data: StructData) -> int:
    """Total size of a struct, padding fields included."""
    return sum(elem_sz(f.kind) for f in struct_data.fields)


def _promote_integer(kind: DataType) -> DataType:
    return DataType.INT32 if _RANKS[kind] < 2 else kind


def infer_primitive_types(lhs: DataType, rhs: DataType) -> DataType:
    """Promoted type of a binary operation on two scalars, or VOID if incompatible."""
    if DataType.VOID in (lhs, rhs) or DataType.POINTER in (lhs, rhs):
        return DataType.VOID
    if lhs is DataType.BOOL or rhs is DataType.BOOL:
        return DataType.BOOL if lhs is rhs else DataType.VOID
    if is_float_t(lhs) or is_float_t(rhs):
        if not (is_float_t(lhs) or is_integer_t(lhs)) or not (is_float_t(rhs) or is_integer_t(rhs)):
            return DataType.VOID
        if lhs is DataType.FLOAT32 and rhs is DataType.FLOAT32:
            return DataType.FLOAT32
        return DataType.FLOAT64
    if not (is_integer_t(lhs) and is_integer_t(rhs)):
        return DataType.VOID

    left = _promote_integer(lhs)
    right = _promote_integer(rhs)
    rank = max(_RANKS[left], _RANKS[right])
    if is_signed_integer_t(left) == is_signed_integer_t(right):
        table = _SIGNED_BY_RANK if is_signed_integer_t(left) else _UNSIGNED_BY_RANK
        return table[rank]
    return _SIGNED_BY_RANK[min(rank + 1, 3)]


def has_qualifier(ptr_data: PointerData, qual: PtrQualifier) -> bool:
    return (ptr_data.qualifier & qual) != PtrQualifier.NONE


def is_const_pointer(ptr_data: PointerData) -> bool:
    return has_qualifier(ptr_data, PtrQualifier.CONST)