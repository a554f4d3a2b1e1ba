"""Dependency graph of passes, split into batches that may run together."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from arcir.passes import AnalysisPass, ExecutionPolicy, Pass


@dataclass(eq=False)
class TaskNode:
    """A pass in the task graph together with its edges."""

    pass_: Pass
    name: str
    dependencies: List[str] = field(default_factory=list)
    invalidations: List[str] = field(default_factory=list)
    depends_on: List["TaskNode"] = field(default_factory=list)
    dependents: List["TaskNode"] = field(default_factory=list)
    in_degree: int = 0
    batch_id: int = 0


class TaskGraph:
    """Collects passes and orders them by their declared dependencies."""

    def __init__(self) -> None:
        self._nodes: List[TaskNode] = []
        self._by_name: Dict[str, TaskNode] = {}

    @property
    def nodes(self) -> List[TaskNode]:
        return list(self._nodes)

    def add(self, pass_: Optional[Pass]) -> "TaskGraph":
        """Add a pass to the graph; None is ignored."""
        if pass_ is None:
            return self
        node = TaskNode(
            pass_=pass_,
            name=pass_.name(),
            dependencies=list(pass_.require()),
            invalidations=list(pass_.invalidates()),
        )
        self._by_name[node.name] = node
        self._nodes.append(node)
        return self

    def build(self, policy: ExecutionPolicy = ExecutionPolicy.PARALLEL):
        """Build a pass manager that runs the passes in dependency order."""
        from arcir.pass_manager import PassManager

        return PassManager.from_task_graph(self, policy)

    def pass_count(self) -> int:
        return len(self._nodes)

    def get_execution_batches(self) -> List[List[str]]:
        """Names of the passes in each batch, without changing this graph."""
        temp = TaskGraph()
        for node in self._nodes:
            temp.add(node.pass_)
        temp.build_dependencies()
        return [[node.name for node in batch] for batch in temp.compute_execution_batches()]

    def validate(self) -> None:
        """Check that every dependency exists and that no cycle is known."""
        for node in self._nodes:
            for dep in node.dependencies:
                if dep not in self._by_name:
                    raise ValueError(f"pass '{node.name}' depends on unknown pass '{dep}'")
        self._check_for_cycles()

    def build_dependencies(self) -> None:
        """Rebuild the edges between nodes from their declared dependencies."""
        for node in self._nodes:
            node.depends_on.clear()
            node.dependents.clear()
            node.in_degree = 0
        for node in self._nodes:
            for dep_name in node.dependencies:
                dep_node = self._by_name.get(dep_name)
                if dep_node is not None:
                    dep_node.dependents.append(node)
                    node.depends_on.append(dep_node)
                    node.in_degree += 1

    def compute_execution_batches(self) -> List[List[TaskNode]]:
        """Topologically sort into batches; analyses come first within a batch."""
        batches: List[List[TaskNode]] = []
        ready = deque(node for node in self._nodes if node.in_degree == 0)
        processed = 0
        batch_id = 0
        while ready:
            batch: List[TaskNode] = []
            for _ in range(len(ready)):
                node = ready.popleft()
                node.batch_id = batch_id
                batch.append(node)
                processed += 1
                for dependent in node.dependents:
                    dependent.in_degree -= 1
                    if dependent.in_degree == 0:
                        ready.append(dependent)
            batch.sort(key=lambda n: (not isinstance(n.pass_, AnalysisPass), n.name))
            batches.append(batch)
            batch_id += 1

        if processed != len(self._nodes):
            raise ValueError("circular dependency detected in task graph")
        return batches

    def _check_for_cycles(self) -> None:
        visited: Set[int] = set()
        in_stack: Set[int] = set()
        for node in self._nodes:
            if id(node) not in visited:
                self._dfs_cycle_check(node, visited, in_stack)

    def _dfs_cycle_check(self, node: TaskNode, visited: Set[int], in_stack: Set[int]) -> None:
        visited.add(id(node))
        in_stack.add(id(node))
        for dependent in node.dependents:
            if id(dependent) in in_stack:
                raise ValueError(
                    f"circular dependency detected: '{node.name}' -> '{dependent.name}'"
                )
            if id(dependent) not in visited:
                self._dfs_cycle_check(dependent, visited, in_stack)
        in_stack.discard(id(node))