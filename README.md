# arcir

A small region-based intermediate representation for compilers, written in
plain Python with no runtime dependencies.

## Modules

- `arcir.types`: the type system. `DataType` and `NodeType` enums, the
  `NodeTraits`, `PtrQualifier` flags and `AtomicOrdering`, the payload classes
  `PointerData`, `VectorData`, `ArrayData`, `StructField`, `StructData` and
  `FunctionData`, and `TypedData`, a value tagged with its `DataType`
  (`set`, `get`, `reset`, `copy`). Helpers: `is_integer_t`, `is_float_t`,
  `is_signed_integer_t`, `is_unsigned_integer_t`, `get_integer_rank`,
  `default_value`, `set_t`, `elem_sz`, `align_t`, `padding_t`,
  `compute_struct_size`, `infer_primitive_types`, `has_qualifier` and
  `is_const_pointer`.
- `arcir.strings`: `StringTable`, which interns strings and hands out integer
  ids.
- `arcir.ir`: `Node`, `Region` and `Module`. Every region starts with an ENTRY
  node. A module owns a global root region (`root`), a read-only data region
  (`rodata`), registered function nodes (`add_fn`, `find_fn`, `functions`) and
  named type definitions (`add_t`, `at_t`, `typemap`). Regions support
  appending, inserting, removing and replacing nodes (`replace` can move the
  old node's edges to the new one), `is_terminated`, and dominance queries
  (`dominates`, `dominates_via_tree`, `has_unstructured_jumps_to`).
- `arcir.builder`: `Builder` creates typed nodes in its current region:
  literals (`lit`), memory operations (`alloc`, `load`, `store`, `ptr_load`,
  `ptr_store`, `addr_of`, `ptr_add`), arithmetic, bitwise and comparison
  operations with operand promotion (`infer_binary_t`), calls, returns,
  branches, jumps and invokes, vectors (`vector_build`, `vector_splat`,
  `vector_extract`), and struct and array access. `StructBuilder` lays out
  struct types, inserting padding fields unless `packed()` is used.
  `StoreHelper` (from `Builder.store_value`) stores a value `to` a location,
  `through` a pointer, or atomically.
- `arcir.passes`: abstract bases `Analysis`, `Pass`, `AnalysisPass` and
  `TransformPass`, and the `ExecutionPolicy` enum.
- `arcir.taskgraph`: `TaskGraph` orders passes by their `require()` lists into
  batches, analyses first within a batch and then by name.
- `arcir.pass_manager`: `PassManager` runs passes sequentially or, for a
  manager built from a task graph with the parallel policy, runs each batch
  on worker threads. It caches analysis results and drops (or incrementally
  updates) the ones a transform invalidates.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Building IR

```python
from arcir.builder import Builder
from arcir.ir import Module
from arcir.types import DataType

module = Module("example")
builder = Builder(module)

a = builder.lit(2)
b = builder.lit(3)
total = builder.add(a, b)      # INT32 result
is_less = builder.lt(a, b)     # BOOL result
builder.ret(total)

assert total.type_kind is DataType.INT32
assert is_less.type_kind is DataType.BOOL
assert module.root.is_terminated()
```

Integer literals are INT32 when they fit, otherwise INT64 (or UINT64); floats
are FLOAT64; a `kind` argument to `lit` overrides this. Operands narrower than
INT32 are promoted; mixed signed and unsigned operands promote to the next
larger signed type; incompatible operands raise `ValueError`.

Struct layouts get padding fields inserted according to alignment:

```python
point = (
    builder.struct_type("Point")
    .field("tag", DataType.UINT8)
    .field("x", DataType.INT32)
    .build()
)
# fields: tag, __pad1 (UINT16 padding... sized to the gap), x
```

## Running passes

```python
from arcir.passes import Analysis, AnalysisPass, TransformPass
from arcir.taskgraph import TaskGraph


class NodeCount(Analysis):
    def __init__(self, count=0):
        self.count = count

    def name(self):
        return "node-count"


class CountNodes(AnalysisPass):
    def name(self):
        return "node-count"

    def run(self, module):
        return NodeCount(len(module.root.nodes))


class Report(TransformPass):
    def name(self):
        return "report"

    def require(self):
        return ["node-count"]

    def run(self, module, pm):
        print(pm.get("node-count").count)
        return []  # no regions modified


graph = TaskGraph()
graph.add(CountNodes()).add(Report())
print(graph.get_execution_batches())   # [['node-count'], ['report']]
manager = graph.build()
manager.run(module)
```

A dependency on a pass that is not in the graph, or a circular dependency,
raises `ValueError` when the manager is built. At run time, a pass whose
required analysis has not been computed raises `RuntimeError`, and
`PassManager.get` raises `KeyError` for an analysis that is not cached.

## What is not included

The package provides the IR, its builder and the pass infrastructure only.
It ships no concrete analysis or optimisation passes, no textual printer for
modules, and no builder for whole function bodies with parameters and blocks:
function nodes and control-flow regions are assembled with `Module`,
`Region` and `Builder` directly.