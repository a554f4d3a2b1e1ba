"""Runs analysis and transform passes over a module and caches analysis results."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from arcir.passes import Analysis, AnalysisPass, ExecutionPolicy, Pass, TransformPass

if TYPE_CHECKING:
    from arcir.ir import Module, Region
    from arcir.taskgraph import TaskGraph


@dataclass
class _WorkerResult:
    pass_: Pass
    modified_regions: List["Region"] = field(default_factory=list)
    error: Optional[BaseException] = None


class PassManager:
    """Holds passes, runs them in order and keeps the analyses they produce."""

    def __init__(self, policy: ExecutionPolicy = ExecutionPolicy.SEQUENTIAL) -> None:
        self._policy = policy
        self._analyses: Dict[str, Analysis] = {}
        self._registry: Dict[str, Pass] = {}
        self._passes: List[Pass] = []
        self._batches: List[List[Pass]] = []
        self._lock = threading.Lock()

    @property
    def policy(self) -> ExecutionPolicy:
        return self._policy

    @classmethod
    def from_task_graph(
        cls, task_graph: "TaskGraph", policy: ExecutionPolicy = ExecutionPolicy.PARALLEL
    ) -> "PassManager":
        """Build a manager whose passes run in the batches the graph computes."""
        manager = cls(policy)
        task_graph.validate()
        task_graph.build_dependencies()
        for batch in task_graph.compute_execution_batches():
            pass_batch: List[Pass] = []
            for node in batch:
                manager._registry[node.pass_.name()] = node.pass_
                manager._passes.append(node.pass_)
                pass_batch.append(node.pass_)
            manager._batches.append(pass_batch)
        return manager

    def add(self, pass_: Pass) -> "PassManager":
        """Append a pass to the execution sequence."""
        if not isinstance(pass_, Pass):
            raise TypeError(f"expected a Pass, got {type(pass_).__name__}")
        self._registry[pass_.name()] = pass_
        self._passes.append(pass_)
        return self

    def get(self, name: str) -> Analysis:
        """Return the cached analysis result called ``name``."""
        with self._lock:
            result = self._analyses.get(name)
        if result is None:
            raise KeyError(f"analysis result not available: {name}")
        return result

    def run(self, module: "Module") -> None:
        """Run every registered pass on ``module``."""
        if self._batches and self._policy is ExecutionPolicy.PARALLEL:
            self._run_parallel(module)
        else:
            self._run_sequential(module)

    def has_analysis(self, name: str) -> bool:
        with self._lock:
            return name in self._analyses

    def pass_count(self) -> int:
        return len(self._passes)

    def clear_analyses(self) -> None:
        """Drop every cached analysis result."""
        with self._lock:
            self._analyses.clear()

    def _run_sequential(self, module: "Module") -> None:
        if self._batches:
            for batch in self._batches:
                for pass_ in batch:
                    self._execute_single_pass(pass_, module)
        else:
            for pass_ in self._passes:
                self._execute_single_pass(pass_, module)

    def _run_parallel(self, module: "Module") -> None:
        for batch in self._batches:
            if len(batch) == 1:
                self._execute_single_pass(batch[0], module)
            else:
                self._execute_batch(batch, module)

    def _execute_single_pass(self, pass_: Pass, module: "Module") -> None:
        self._validate_dependencies(pass_)
        if isinstance(pass_, AnalysisPass):
            self._run_analysis(pass_, module)
        elif isinstance(pass_, TransformPass):
            self._run_transform(pass_, module)

    def _work(self, pass_: Pass, module: "Module") -> _WorkerResult:
        result = _WorkerResult(pass_)
        try:
            self._validate_dependencies(pass_)
            if isinstance(pass_, AnalysisPass):
                self._run_analysis(pass_, module)
            elif isinstance(pass_, TransformPass):
                result.modified_regions = list(pass_.run(module, self) or [])
        except BaseException as exc:  # collected and re-raised after the batch
            result.error = exc
        return result

    def _execute_batch(self, batch: Sequence[Pass], module: "Module") -> None:
        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = [pool.submit(self._work, pass_, module) for pass_ in batch]
            results = [future.result() for future in futures]

        for result in results:
            if result.error is not None:
                raise result.error
            if result.modified_regions and isinstance(result.pass_, TransformPass):
                self._invalidate_analyses(result.modified_regions, result.pass_.invalidates())

    def _invalidate_analyses(
        self, modified_regions: Sequence["Region"], invalidated: Sequence[str]
    ) -> None:
        with self._lock:
            for name in invalidated:
                analysis = self._analyses.get(name)
                if name not in self._analyses:
                    continue
                if analysis is None or not analysis.update(list(modified_regions)):
                    del self._analyses[name]

    def _validate_dependencies(self, pass_: Pass) -> None:
        for dep in pass_.require():
            dep_pass = self._registry.get(dep)
            if dep_pass is None:
                raise RuntimeError(f"pass '{pass_.name()}' depends on unknown pass '{dep}'")
            if isinstance(dep_pass, AnalysisPass) and not self.has_analysis(dep):
                raise RuntimeError(
                    f"pass '{pass_.name()}' requires analysis '{dep}' which hasn't been run"
                )

    def _run_analysis(self, analysis: AnalysisPass, module: "Module") -> None:
        if self.has_analysis(analysis.name()):
            return
        result = analysis.run(module)
        if result is None:
            raise RuntimeError(f"analysis pass: '{analysis.name()}' returned null result")
        with self._lock:
            self._analyses[result.name()] = result

    def _run_transform(self, transform: TransformPass, module: "Module") -> None:
        modified = list(transform.run(module, self) or [])
        if modified:
            self._invalidate_analyses(modified, transform.invalidates())