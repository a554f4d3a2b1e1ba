"""IR graph containers: nodes, regions and modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from arcir.strings import INVALID_STRING_ID, StringTable
from arcir.types import DataType, NodeTraits, NodeType, TypedData

_TERMINATORS = frozenset({NodeType.RET, NodeType.JUMP, NodeType.BRANCH, NodeType.INVOKE})


def _contains_identity(items: Iterable[object], item: object) -> bool:
    return any(candidate is item for candidate in items)


def _index_identity(items: List[object], item: object) -> Optional[int]:
    for index, candidate in enumerate(items):
        if candidate is item:
            return index
    return None


@dataclass(eq=False)
class Node:
    """A single IR operation with its data edges."""

    ir_type: NodeType = NodeType.ENTRY
    type_kind: DataType = DataType.VOID
    value: TypedData = field(default_factory=TypedData)
    inputs: List["Node"] = field(default_factory=list)
    users: List["Node"] = field(default_factory=list)
    parent: Optional["Region"] = None
    traits: NodeTraits = NodeTraits.NONE
    str_id: int = INVALID_STRING_ID

    def __repr__(self) -> str:
        return (
            f"Node({self.ir_type.name}, {self.type_kind.name}, "
            f"inputs={len(self.inputs)}, users={len(self.users)})"
        )


class Region:
    """An ordered block of nodes, always headed by an ENTRY node."""

    def __init__(self, name: str, module: "Module", parent: Optional["Region"] = None) -> None:
        self._module = module
        self._parent = parent
        self._region_id = module.intern_str(name)
        self._children: List[Region] = []
        entry = Node(ir_type=NodeType.ENTRY, parent=self)
        self._nodes: List[Node] = [entry]

    @property
    def name(self) -> str:
        return self._module.strtable.get(self._region_id)

    @property
    def parent(self) -> Optional["Region"]:
        return self._parent

    @property
    def module(self) -> "Module":
        return self._module

    @property
    def children(self) -> Tuple["Region", ...]:
        return tuple(self._children)

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(self._nodes)

    def add_child(self, child: Optional["Region"]) -> None:
        """Register ``child`` once as a child region."""
        if child is None or _contains_identity(self._children, child):
            return
        self._children.append(child)

    def _detach(self, node: Node) -> None:
        if node.parent is not None and node.parent is not self:
            node.parent.remove(node)

    def append(self, node: Optional[Node]) -> None:
        """Add ``node`` at the end; an ENTRY node goes to the front, once."""
        if node is None:
            return
        self._detach(node)
        if _contains_identity(self._nodes, node):
            return
        has_entry = bool(self._nodes) and self._nodes[0].ir_type is NodeType.ENTRY
        if node.ir_type is NodeType.ENTRY:
            if has_entry:
                return
            self._nodes.insert(0, node)
        else:
            self._nodes.append(node)
        node.parent = self

    def remove(self, node: Optional[Node]) -> None:
        """Take ``node`` out of this region if present."""
        if node is None:
            return
        index = _index_identity(self._nodes, node)
        if index is not None:
            del self._nodes[index]
            node.parent = None

    def remove_all(self, nodes: Iterable[Node]) -> None:
        for node in list(nodes):
            self.remove(node)

    def insert_before(self, before: Optional[Node], node: Optional[Node]) -> None:
        """Insert ``node`` ahead of ``before``, never ahead of the ENTRY node."""
        if before is None or node is None:
            return
        index = _index_identity(self._nodes, before)
        if index is None:
            return
        self._detach(node)
        index = _index_identity(self._nodes, before)
        if index == 0 and before.ir_type is NodeType.ENTRY:
            index = 1
        self._nodes.insert(index, node)
        node.parent = self

    def insert_after(self, after: Optional[Node], node: Optional[Node]) -> None:
        """Insert ``node`` right after ``after``."""
        if after is None or node is None:
            return
        if _index_identity(self._nodes, after) is None:
            return
        self._detach(node)
        index = _index_identity(self._nodes, after)
        self._nodes.insert(index + 1, node)
        node.parent = self

    def insert(self, node: Optional[Node]) -> None:
        """Insert ``node`` at the start, right after the ENTRY node if any."""
        if node is None:
            return
        self._detach(node)
        if self._nodes and self._nodes[0].ir_type is NodeType.ENTRY:
            self._nodes.insert(1, node)
        else:
            self._nodes.insert(0, node)
        node.parent = self

    def is_terminated(self) -> bool:
        """Whether the last node transfers control (EXIT does not count)."""
        if not self._nodes:
            return False
        return self._nodes[-1].ir_type in _TERMINATORS

    def _ancestors(self):
        ancestor = self._parent
        while ancestor is not None:
            yield ancestor
            ancestor = ancestor.parent

    def dominates(self, possibly_dominated: Optional["Region"]) -> bool:
        """Tree dominance, defeated by unstructured jumps from this region or its ancestors."""
        if possibly_dominated is None:
            return False
        if self is possibly_dominated:
            return True
        if self.has_unstructured_jumps_to(possibly_dominated) is not None:
            return False
        if any(a.has_unstructured_jumps_to(possibly_dominated) is not None for a in self._ancestors()):
            return False
        return any(a is self for a in possibly_dominated._ancestors())

    def has_unstructured_jumps_to(self, target: Optional["Region"]) -> Optional[Node]:
        """Return the first control node reaching ``target`` outside tree dominance."""
        if target is None:
            return None

        def lands_in_target(entry: Optional[Node]) -> bool:
            return entry is not None and entry.parent is target

        for node in self._nodes:
            if node.ir_type is NodeType.JUMP:
                reaches = bool(node.inputs) and lands_in_target(node.inputs[0])
            elif node.ir_type is NodeType.BRANCH:
                reaches = len(node.inputs) >= 3 and (
                    lands_in_target(node.inputs[1]) or lands_in_target(node.inputs[2])
                )
            elif node.ir_type is NodeType.INVOKE:
                reaches = len(node.inputs) >= 2 and (
                    lands_in_target(node.inputs[-2]) or lands_in_target(node.inputs[-1])
                )
            else:
                continue
            if reaches and not self.dominates_via_tree(target):
                return node
        return None

    def dominates_via_tree(self, possibly_dominated: Optional["Region"]) -> bool:
        """Pure parent/child dominance."""
        if possibly_dominated is None:
            return False
        if self is possibly_dominated:
            return True
        return any(a is self for a in possibly_dominated._ancestors())

    def replace(self, old: Optional[Node], new: Optional[Node], rewire: bool = True) -> bool:
        """Put ``new`` where ``old`` stands; optionally move its edges over."""
        if old is None or new is None:
            return False
        index = _index_identity(self._nodes, old)
        if index is None:
            return False

        self._nodes[index] = new
        new.parent = self
        old.parent = None

        if rewire:
            for user in old.users:
                if not _contains_identity(user.inputs, old):
                    continue
                user.inputs[:] = [new if inp is old else inp for inp in user.inputs]
                if not _contains_identity(new.users, user):
                    new.users.append(user)

            if not new.inputs and old.inputs:
                for inp in old.inputs:
                    new.inputs.append(inp)
                    user_index = _index_identity(inp.users, old)
                    if user_index is not None:
                        inp.users[user_index] = new
                    else:
                        inp.users.append(new)

            old.users.clear()
            old.inputs.clear()
        return True

    def __repr__(self) -> str:
        return f"Region({self.name!r}, nodes={len(self._nodes)})"


class Module:
    """Top-level IR container owning regions, functions and type definitions."""

    def __init__(self, name: str) -> None:
        self._strtable = StringTable()
        self._typedefs: Dict[str, TypedData] = {}
        self._fns: List[Node] = []
        self._regions: List[Region] = []
        self._root = Region(".__global", self, None)
        self._regions.append(self._root)
        self._rodata = Region(".__rodata", self, None)
        self._regions.append(self._rodata)
        self._name_id = self._strtable.intern(name)

    @property
    def name(self) -> str:
        return self._strtable.get(self._name_id)

    @property
    def root(self) -> Region:
        return self._root

    @property
    def rodata(self) -> Region:
        return self._rodata

    @property
    def functions(self) -> Tuple[Node, ...]:
        return tuple(self._fns)

    @property
    def strtable(self) -> StringTable:
        return self._strtable

    @property
    def typemap(self) -> Mapping[str, TypedData]:
        return MappingProxyType(self._typedefs)

    def create_region(self, name: str, parent: Optional[Region] = None) -> Region:
        """Create a region under ``parent`` (the root region by default)."""
        if parent is None:
            parent = self._root
        region = Region(name, self, parent)
        self._regions.append(region)
        parent.add_child(region)
        return region

    def find_fn(self, name: str) -> Optional[Node]:
        """The registered function named ``name``, or None."""
        name_id = self._strtable.intern(name)
        return next((fn for fn in self._fns if fn.str_id == name_id), None)

    def add_fn(self, fn: Optional[Node]) -> None:
        """Register a FUNCTION node once; anything else is ignored."""
        if fn is None or fn.ir_type is not NodeType.FUNCTION:
            return
        if not _contains_identity(self._fns, fn):
            self._fns.append(fn)

    def add_rodata(self, node: Optional[Node]) -> None:
        if node is None:
            return
        self._rodata.append(node)

    def intern_str(self, text: str) -> int:
        return self._strtable.intern(text)

    def contains(self, item: Union[Node, Region, None]) -> bool:
        """Whether a function node or a region belongs to this module."""
        if isinstance(item, Node):
            return _contains_identity(self._fns, item)
        if isinstance(item, Region):
            return _contains_identity(self._regions, item)
        return False

    def add_t(self, name: str, tdef: TypedData) -> TypedData:
        """Register a named type; a name may be defined only once."""
        if name in self._typedefs:
            raise ValueError(f"type '{name}' already defined")
        self._typedefs[name] = tdef
        return tdef

    def at_t(self, name: str) -> TypedData:
        """Look up a named type."""
        try:
            return self._typedefs[name]
        except KeyError:
            raise KeyError(f"type '{name}' not found") from None

    def __repr__(self) -> str:
        return f"Module({self.name!r})"