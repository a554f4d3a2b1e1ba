"""Convenience API for creating IR nodes inside a module."""

from __future__ import annotations

import dataclasses
from typing import Any, List, Optional, Sequence

from arcir.ir import Module, Node, Region
from arcir.types import (
    AtomicOrdering,
    DataType,
    NodeType,
    PointerData,
    StructData,
    StructField,
    TypedData,
    VectorData,
    align_t,
    elem_sz,
    infer_primitive_types,
    is_float_t,
    is_integer_t,
    padding_t,
    set_t,
)

_COMPARISONS = frozenset(
    {NodeType.EQ, NodeType.NEQ, NodeType.LT, NodeType.LTE, NodeType.GT, NodeType.GTE}
)

_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


def _retype(node: Node, kind: DataType) -> None:
    """Give ``node`` the type ``kind``, converting a held scalar value where possible."""
    if node.type_kind is kind:
        return
    node.type_kind = kind
    data = node.value
    if data.kind is DataType.VOID or data.kind is kind:
        return
    if not (is_integer_t(data.kind) or is_float_t(data.kind)):
        return
    raw = data.value
    try:
        converted = TypedData(kind, float(raw) if is_float_t(kind) else raw)
    except (TypeError, ValueError):
        return
    node.value = converted


def infer_binary_t(lhs: Node, rhs: Node) -> bool:
    """Promote both operands to a common type in place; False if incompatible."""
    if lhs.type_kind is DataType.VECTOR or rhs.type_kind is DataType.VECTOR:
        if lhs.type_kind is not rhs.type_kind:
            return False
        if lhs.value.kind is not DataType.VECTOR or rhs.value.kind is not DataType.VECTOR:
            return True
        left: VectorData = lhs.value.get(DataType.VECTOR)
        right: VectorData = rhs.value.get(DataType.VECTOR)
        if left.lane_count != right.lane_count:
            return False
        elem = infer_primitive_types(left.elem_type, right.elem_type)
        if elem is DataType.VOID:
            return False
        left.elem_type = elem
        right.elem_type = elem
        return True

    promoted = infer_primitive_types(lhs.type_kind, rhs.type_kind)
    if promoted is DataType.VOID:
        return False
    _retype(lhs, promoted)
    _retype(rhs, promoted)
    return True


def _literal_kind(value: Any) -> DataType:
    if isinstance(value, bool):
        return DataType.BOOL
    if isinstance(value, int):
        if _INT32_MIN <= value <= _INT32_MAX:
            return DataType.INT32
        if _INT64_MIN <= value <= _INT64_MAX:
            return DataType.INT64
        return DataType.UINT64
    if isinstance(value, float):
        return DataType.FLOAT64
    raise TypeError(f"cannot infer a literal type for {type(value).__name__}")


class Builder:
    """Creates nodes at the current insertion point of a module."""

    def __init__(self, module: Module) -> None:
        self.module = module
        self._current_region: Optional[Region] = module.root

    def set_insertion_point(self, region: Optional[Region]) -> None:
        self._current_region = region

    def get_insertion_point(self) -> Optional[Region]:
        return self._current_region

    def lit(self, value: Any, kind: Optional[DataType] = None) -> Node:
        """A literal node; the type is inferred from ``value`` unless ``kind`` is given."""
        if kind is None:
            kind = _literal_kind(value)
        data = TypedData(kind, value)
        node = self.create_node(NodeType.LIT, kind)
        node.value = data
        return node

    def alloc(self, type_def: TypedData) -> Node:
        node = self.create_node(NodeType.ALLOC, type_def.kind)
        node.value = type_def.copy()
        return node

    def load(self, location: Optional[Node]) -> Node:
        if location is None:
            raise ValueError("load location cannot be null")
        node = self.create_node(NodeType.LOAD, location.type_kind)
        if location.type_kind is DataType.POINTER and location.value.kind is DataType.POINTER:
            node.value = location.value.copy()
        self.connect_inputs(node, [location])
        return node

    def store(self, value: Optional[Node], location: Optional[Node]) -> Node:
        if value is None or location is None:
            raise ValueError("store operands cannot be null")
        node = self.create_node(NodeType.STORE)
        self.connect_inputs(node, [value, location])
        return node

    def store_value(self, value: Optional[Node]) -> "StoreHelper":
        """Start a fluent store of ``value``."""
        return StoreHelper(self, value)

    def ptr_load(self, pointer: Optional[Node]) -> Node:
        if pointer is None:
            raise ValueError("pointer cannot be null")
        if pointer.type_kind is not DataType.POINTER:
            raise ValueError("ptr_load requires pointer type")
        ptr_data: PointerData = pointer.value.get(DataType.POINTER)
        if ptr_data.pointee is None:
            raise ValueError("pointee node needs to be valid")
        node = self.create_node(NodeType.PTR_LOAD, ptr_data.pointee.type_kind)
        self.connect_inputs(node, [pointer])
        return node

    def ptr_store(self, value: Optional[Node], pointer: Optional[Node]) -> Node:
        if value is None or pointer is None:
            raise ValueError("ptr_store operands cannot be null")
        if pointer.type_kind is not DataType.POINTER:
            raise ValueError("ptr_store requires pointer type")
        ptr_data: PointerData = pointer.value.get(DataType.POINTER)
        if ptr_data.pointee is not None and value.type_kind is not ptr_data.pointee.type_kind:
            raise ValueError("value type must match pointer pointee type")
        node = self.create_node(NodeType.PTR_STORE)
        self.connect_inputs(node, [value, pointer])
        return node

    def addr_of(self, variable: Optional[Node]) -> Node:
        if variable is None:
            raise ValueError("variable cannot be null")
        node = self.create_node(NodeType.ADDR_OF, DataType.POINTER)
        node.value = TypedData(DataType.POINTER, PointerData(pointee=variable, addr_space=0))
        self.connect_inputs(node, [variable])
        return node

    def ptr_add(self, base_pointer: Optional[Node], offset: Optional[Node]) -> Node:
        if base_pointer is None or offset is None:
            raise ValueError("ptr_add operands cannot be null")
        if base_pointer.type_kind is not DataType.POINTER:
            raise ValueError("ptr_add requires pointer base")
        node = self.create_node(NodeType.PTR_ADD, DataType.POINTER)
        base_data: PointerData = base_pointer.value.get(DataType.POINTER)
        node.value = TypedData(DataType.POINTER, dataclasses.replace(base_data))
        self.connect_inputs(node, [base_pointer, offset])
        return node

    def binary_op(self, op: NodeType, lhs: Optional[Node], rhs: Optional[Node]) -> Node:
        """Binary operation with operand promotion; comparisons yield BOOL."""
        if lhs is None or rhs is None:
            raise ValueError("binary operation operands cannot be null")
        if not infer_binary_t(lhs, rhs):
            raise ValueError("incompatible types for binary operation")
        result_type = DataType.BOOL if op in _COMPARISONS else lhs.type_kind
        node = self.create_node(op, result_type)
        if result_type is DataType.VECTOR and lhs.value.kind is DataType.VECTOR:
            node.value = lhs.value.copy()
        self.connect_inputs(node, [lhs, rhs])
        return node

    def add(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.ADD, lhs, rhs)

    def sub(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.SUB, lhs, rhs)

    def mul(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.MUL, lhs, rhs)

    def div(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.DIV, lhs, rhs)

    def mod(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.MOD, lhs, rhs)

    def band(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.BAND, lhs, rhs)

    def bor(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.BOR, lhs, rhs)

    def bxor(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.BXOR, lhs, rhs)

    def bnot(self, value: Optional[Node]) -> Node:
        if value is None:
            raise ValueError("bnot operand cannot be null")
        node = self.create_node(NodeType.BNOT, value.type_kind)
        self.connect_inputs(node, [value])
        return node

    def bshl(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.BSHL, lhs, rhs)

    def bshr(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.BSHR, lhs, rhs)

    def eq(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.EQ, lhs, rhs)

    def neq(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.NEQ, lhs, rhs)

    def lt(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.LT, lhs, rhs)

    def lte(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.LTE, lhs, rhs)

    def gt(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.GT, lhs, rhs)

    def gte(self, lhs: Node, rhs: Node) -> Node:
        return self.binary_op(NodeType.GTE, lhs, rhs)

    def _returning_node(self, node_type: NodeType, function: Node) -> Node:
        fn_data = function.value.get(DataType.FUNCTION)
        return_data = fn_data.return_type
        return_type = return_data.kind if return_data is not None else DataType.VOID
        node = self.create_node(node_type, return_type)
        if return_type is not DataType.VOID and return_data is not None:
            node.value = return_data.copy()
        return node

    def call(self, function: Optional[Node], args: Sequence[Node] = ()) -> Node:
        if function is None:
            raise ValueError("function cannot be null")
        if function.type_kind is not DataType.FUNCTION:
            raise ValueError("call requires function type")
        node = self._returning_node(NodeType.CALL, function)
        self.connect_inputs(node, [function, *args])
        return node

    def ret(self, value: Optional[Node] = None) -> Node:
        node = self.create_node(NodeType.RET)
        if value is not None:
            self.connect_inputs(node, [value])
        return node

    def branch(
        self,
        condition: Optional[Node],
        true_target: Optional[Node],
        false_target: Optional[Node],
    ) -> Node:
        if condition is None or true_target is None or false_target is None:
            raise ValueError("branch operands cannot be null")
        if condition.type_kind is not DataType.BOOL:
            raise ValueError("branch condition must be bool type")
        if true_target.ir_type is not NodeType.ENTRY or false_target.ir_type is not NodeType.ENTRY:
            raise ValueError("branch targets must be ENTRY nodes")
        node = self.create_node(NodeType.BRANCH)
        self.connect_inputs(node, [condition, true_target, false_target])
        return node

    def jump(self, target: Optional[Node]) -> Node:
        if target is None:
            raise ValueError("jump target cannot be null")
        if target.ir_type is not NodeType.ENTRY:
            raise ValueError("jump target must be ENTRY node")
        node = self.create_node(NodeType.JUMP)
        self.connect_inputs(node, [target])
        return node

    def invoke(
        self,
        function: Optional[Node],
        args: Sequence[Node],
        normal_target: Optional[Node],
        except_target: Optional[Node],
    ) -> Node:
        if function is None or normal_target is None or except_target is None:
            raise ValueError("invoke operands cannot be null")
        if function.type_kind is not DataType.FUNCTION:
            raise ValueError("invoke requires function type")
        if normal_target.ir_type is not NodeType.ENTRY or except_target.ir_type is not NodeType.ENTRY:
            raise ValueError("invoke targets must be ENTRY nodes")
        node = self._returning_node(NodeType.INVOKE, function)
        self.connect_inputs(node, [function, normal_target, except_target, *args])
        return node

    def vector_build(self, elements: Sequence[Node]) -> Node:
        if not elements:
            raise ValueError("vector_build requires at least one element")
        elem_type = elements[0].type_kind
        if any(elem.type_kind is not elem_type for elem in elements):
            raise ValueError("all vector elements must have the same type")
        node = self.create_node(NodeType.VECTOR_BUILD, DataType.VECTOR)
        node.value = TypedData(
            DataType.VECTOR, VectorData(elem_type=elem_type, lane_count=len(elements))
        )
        self.connect_inputs(node, elements)
        return node

    def vector_splat(self, scalar: Optional[Node], lane_count: int) -> Node:
        if scalar is None:
            raise ValueError("scalar cannot be null")
        if lane_count <= 0:
            raise ValueError("lane_count must be greater than 0")
        node = self.create_node(NodeType.VECTOR_SPLAT, DataType.VECTOR)
        node.value = TypedData(
            DataType.VECTOR, VectorData(elem_type=scalar.type_kind, lane_count=lane_count)
        )
        self.connect_inputs(node, [scalar])
        return node

    def vector_extract(self, vector: Optional[Node], index: int) -> Node:
        if vector is None:
            raise ValueError("vector cannot be null")
        if vector.type_kind is not DataType.VECTOR:
            raise ValueError("vector_extract requires vector type")
        vec_data: VectorData = vector.value.get(DataType.VECTOR)
        if index < 0 or index >= vec_data.lane_count:
            raise ValueError("vector index out of bounds")
        index_node = self.lit(index, DataType.UINT32)
        node = self.create_node(NodeType.VECTOR_EXTRACT, vec_data.elem_type)
        self.connect_inputs(node, [vector, index_node])
        return node

    def struct_field(self, struct_obj: Optional[Node], field_name: str) -> Node:
        if struct_obj is None or struct_obj.type_kind is not DataType.STRUCT:
            raise ValueError("struct_field requires struct type")
        struct_data: StructData = struct_obj.value.get(DataType.STRUCT)
        strtable = self.module.strtable
        found = next(
            (
                (index, entry)
                for index, entry in enumerate(struct_data.fields)
                if strtable.get(entry.name) == field_name
            ),
            None,
        )
        if found is None or found[1].kind is DataType.VOID:
            raise ValueError(f"field not found: {field_name}")
        field_index, entry = found
        index_node = self.lit(field_index, DataType.UINT32)
        node = self.create_node(NodeType.ACCESS, entry.kind)
        node.value = entry.data.copy()
        self.connect_inputs(node, [struct_obj, index_node])
        return node

    def struct_type(self, name: str) -> "StructBuilder":
        return StructBuilder(self, name)

    def array_index(self, array: Optional[Node], index: Optional[Node]) -> Node:
        if array is None or index is None:
            raise ValueError("array_index operands cannot be null")
        if array.type_kind is not DataType.ARRAY:
            raise ValueError("array_index accepts only array type")
        arr_data = array.value.get(DataType.ARRAY)
        node = self.create_node(NodeType.ACCESS, arr_data.elem_type)
        self.connect_inputs(node, [array, index])
        return node

    def create_node(self, node_type: NodeType, result_type: DataType = DataType.VOID) -> Node:
        """Create a node of ``node_type`` and append it to the current region."""
        region = self._current_region
        if region is None:
            raise RuntimeError("no current region set for node creation")
        node = Node(ir_type=node_type, type_kind=result_type, parent=region)
        region.append(node)
        return node

    @staticmethod
    def connect_inputs(node: Optional[Node], inputs: Sequence[Optional[Node]]) -> None:
        """Add data edges from each non-null input to ``node``."""
        if node is None:
            return
        for source in inputs:
            if source is not None:
                node.inputs.append(source)
                source.users.append(node)


class StructBuilder:
    """Collects fields and lays out a struct type definition."""

    def __init__(self, builder: Builder, name: str) -> None:
        self._builder = builder
        self._name_id = builder.module.intern_str(name)
        self._fields: List[StructField] = []
        self._is_packed = False

    def field(self, name: str, kind: DataType, type_data: Optional[TypedData] = None) -> "StructBuilder":
        data = type_data.copy() if type_data is not None else TypedData()
        self._fields.append(StructField(self._builder.module.intern_str(name), kind, data))
        return self

    def _pointer_field(self, name: str, pointee: Optional[Node], addr_space: int) -> "StructBuilder":
        data = TypedData(DataType.POINTER, PointerData(pointee=pointee, addr_space=addr_space))
        self._fields.append(
            StructField(self._builder.module.intern_str(name), DataType.POINTER, data)
        )
        return self

    def field_ptr(self, name: str, pointee: Optional[Node] = None, addr_space: int = 0) -> "StructBuilder":
        """Pointer field; ``pointee`` may be None for forward references."""
        return self._pointer_field(name, pointee, addr_space)

    def self_ptr(self, name: str, addr_space: int = 0) -> "StructBuilder":
        """Self-referential pointer field."""
        return self._pointer_field(name, None, addr_space)

    def packed(self) -> "StructBuilder":
        self._is_packed = True
        return self

    def _padding(self, name: str, size: int) -> StructField:
        kind = padding_t(size)
        data = TypedData()
        set_t(data, kind)
        return StructField(self._builder.module.intern_str(name), kind, data)

    def build(self, alignment: int = 8) -> TypedData:
        """Lay out the fields, inserting padding unless packed."""
        if alignment <= 0:
            raise ValueError("alignment must be greater than 0")
        struct_alignment = 1 if self._is_packed else alignment
        final_fields: List[StructField] = []
        offset = 0
        for entry in self._fields:
            if not self._is_packed:
                field_align = align_t(entry.kind)
                needed = (field_align - offset % field_align) % field_align
                if needed > 0:
                    final_fields.append(self._padding(f"__pad{len(final_fields)}", needed))
                    offset += needed
            final_fields.append(StructField(entry.name, entry.kind, entry.data.copy()))
            offset += elem_sz(entry.kind)

        if not self._is_packed:
            final_padding = (struct_alignment - offset % struct_alignment) % struct_alignment
            if final_padding > 0:
                final_fields.append(self._padding("__pad_final", final_padding))

        struct_data = StructData(fields=final_fields, alignment=struct_alignment, name=self._name_id)
        return TypedData(DataType.STRUCT, struct_data)


class StoreHelper:
    """Fluent store of a value into a location or through a pointer."""

    def __init__(self, builder: Builder, value: Optional[Node]) -> None:
        self._builder = builder
        self._value = value

    def to(self, location: Optional[Node], offset: Optional[Node] = None) -> Node:
        """Store into ``location``, or at ``offset`` from its address when given."""
        builder = self._builder
        if offset is None:
            if location is None:
                raise ValueError("store location cannot be null")
            node = builder.create_node(NodeType.STORE)
            Builder.connect_inputs(node, [self._value, location])
            return node
        if location is None:
            raise ValueError("store location and offset cannot be null")
        address = builder.addr_of(location)
        target = builder.ptr_add(address, offset)
        node = builder.create_node(NodeType.PTR_STORE)
        Builder.connect_inputs(node, [self._value, target])
        return node

    def through(self, pointer: Optional[Node]) -> Node:
        if pointer is None:
            raise ValueError("store pointer cannot be null")
        if pointer.type_kind is not DataType.POINTER:
            raise ValueError("through requires pointer type")
        node = self._builder.create_node(NodeType.PTR_STORE)
        Builder.connect_inputs(node, [self._value, pointer])
        return node

    def to_atomic(
        self, location: Optional[Node], ordering: AtomicOrdering = AtomicOrdering.SEQ_CST
    ) -> Node:
        if location is None:
            raise ValueError("atomic store location cannot be null")
        builder = self._builder
        ordering_node = builder.lit(int(ordering), DataType.UINT8)
        address = builder.addr_of(location)
        node = builder.create_node(NodeType.ATOMIC_STORE)
        Builder.connect_inputs(node, [self._value, address, ordering_node])
        return node

    def through_atomic(
        self, pointer: Optional[Node], ordering: AtomicOrdering = AtomicOrdering.SEQ_CST
    ) -> Node:
        if pointer is None:
            raise ValueError("atomic store pointer cannot be null")
        if pointer.type_kind is not DataType.POINTER:
            raise ValueError("through_atomic requires pointer type")
        builder = self._builder
        ordering_node = builder.lit(int(ordering), DataType.UINT8)
        node = builder.create_node(NodeType.ATOMIC_STORE)
        Builder.connect_inputs(node, [self._value, pointer, ordering_node])
        return node