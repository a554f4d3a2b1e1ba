import pytest

from arcir.ir import Module
from arcir.pass_manager import PassManager
from arcir.passes import Analysis, AnalysisPass, ExecutionPolicy, TransformPass
from arcir.taskgraph import TaskGraph


class CountResult(Analysis):
    def __init__(self, name, count, updatable=False):
        self._name = name
        self.count = count
        self.updatable = updatable
        self.updates = 0

    def name(self):
        return self._name

    def update(self, regions):
        self.updates += 1
        return self.updatable


class CountAnalysis(AnalysisPass):
    def __init__(self, name="count", updatable=False, log=None):
        self._name = name
        self.updatable = updatable
        self.runs = 0
        self.log = log

    def name(self):
        return self._name

    def run(self, module):
        self.runs += 1
        if self.log is not None:
            self.log.append(self._name)
        return CountResult(self._name, len(module.root.nodes), self.updatable)


class NullAnalysis(AnalysisPass):
    def name(self):
        return "null"

    def run(self, module):
        return None


class Touch(TransformPass):
    def __init__(self, name="touch", requires=(), invalidated=(), modify=True, log=None):
        self._name = name
        self._requires = list(requires)
        self._invalidated = list(invalidated)
        self.modify = modify
        self.log = log
        self.seen = None

    def name(self):
        return self._name

    def require(self):
        return list(self._requires)

    def invalidates(self):
        return list(self._invalidated)

    def run(self, module, pm):
        if self.log is not None:
            self.log.append(self._name)
        if "count" in self._requires:
            self.seen = pm.get("count").count
        return [module.root] if self.modify else []


class Failing(TransformPass):
    def name(self):
        return "failing"

    def run(self, module, pm):
        raise ArithmeticError("boom")


@pytest.fixture
def module():
    return Module("pm_test")


def test_add_registers_and_chains():
    pm = PassManager()
    assert pm.add(CountAnalysis()) is pm
    pm.add(Touch())
    assert pm.pass_count() == 2


def test_add_rejects_non_pass():
    with pytest.raises(TypeError):
        PassManager().add(object())


def test_analysis_is_cached_and_retrievable(module):
    analysis = CountAnalysis()
    pm = PassManager().add(analysis)
    pm.run(module)
    assert pm.has_analysis("count")
    assert pm.get("count").count == len(module.root.nodes)


def test_get_missing_raises(module):
    pm = PassManager()
    pm.run(module)
    with pytest.raises(KeyError):
        pm.get("count")


def test_cached_analysis_not_rerun(module):
    analysis = CountAnalysis()
    pm = PassManager().add(analysis)
    pm.run(module)
    pm.run(module)
    assert analysis.runs == 1


def test_clear_analyses_forces_rerun(module):
    analysis = CountAnalysis()
    pm = PassManager().add(analysis)
    pm.run(module)
    pm.clear_analyses()
    assert not pm.has_analysis("count")
    pm.run(module)
    assert analysis.runs == 2


def test_transform_reads_required_analysis(module):
    touch = Touch(requires=["count"])
    pm = PassManager().add(CountAnalysis()).add(touch)
    pm.run(module)
    assert touch.seen == len(module.root.nodes)


def test_unknown_dependency_raises(module):
    pm = PassManager().add(Touch(requires=["missing"]))
    with pytest.raises(RuntimeError, match="unknown pass 'missing'"):
        pm.run(module)


def test_analysis_not_yet_run_raises(module):
    pm = PassManager().add(Touch(requires=["count"])).add(CountAnalysis())
    with pytest.raises(RuntimeError, match="hasn't been run"):
        pm.run(module)


def test_null_analysis_result_raises(module):
    pm = PassManager().add(NullAnalysis())
    with pytest.raises(RuntimeError, match="returned null result"):
        pm.run(module)


def test_transform_invalidates_analysis(module):
    pm = PassManager().add(CountAnalysis()).add(Touch(invalidated=["count"]))
    pm.run(module)
    assert not pm.has_analysis("count")


def test_updatable_analysis_survives_invalidation(module):
    pm = PassManager().add(CountAnalysis(updatable=True)).add(Touch(invalidated=["count"]))
    pm.run(module)
    assert pm.has_analysis("count")
    assert pm.get("count").updates == 1


def test_unmodified_transform_keeps_analysis(module):
    pm = PassManager().add(CountAnalysis()).add(Touch(invalidated=["count"], modify=False))
    pm.run(module)
    assert pm.has_analysis("count")
    assert pm.get("count").updates == 0


@pytest.mark.parametrize("policy", [ExecutionPolicy.SEQUENTIAL, ExecutionPolicy.PARALLEL])
def test_from_task_graph_respects_dependencies(module, policy):
    log = []
    graph = TaskGraph()
    graph.add(Touch("late", requires=["count"], modify=False, log=log))
    graph.add(CountAnalysis(log=log))
    graph.add(Touch("other", modify=False, log=log))
    pm = PassManager.from_task_graph(graph, policy)
    assert pm.pass_count() == 3
    assert pm.policy is policy
    pm.run(module)
    assert log.index("count") < log.index("late")
    assert sorted(log) == ["count", "late", "other"]
    assert pm.has_analysis("count")


def test_task_graph_build_returns_manager(module):
    graph = TaskGraph()
    graph.add(CountAnalysis())
    pm = graph.build()
    assert isinstance(pm, PassManager)
    assert pm.policy is ExecutionPolicy.PARALLEL
    pm.run(module)
    assert pm.has_analysis("count")


def test_from_task_graph_unknown_dependency(module):
    graph = TaskGraph()
    graph.add(Touch(requires=["nowhere"]))
    with pytest.raises(ValueError, match="unknown pass"):
        PassManager.from_task_graph(graph)


def test_from_task_graph_cycle(module):
    graph = TaskGraph()
    graph.add(Touch("a", requires=["b"]))
    graph.add(Touch("b", requires=["a"]))
    with pytest.raises(ValueError, match="circular dependency"):
        PassManager.from_task_graph(graph)


def test_parallel_batch_propagates_exception(module):
    graph = TaskGraph()
    graph.add(Failing())
    graph.add(Touch("fine", modify=False))
    pm = PassManager.from_task_graph(graph, ExecutionPolicy.PARALLEL)
    with pytest.raises(ArithmeticError, match="boom"):
        pm.run(module)


def test_parallel_batch_invalidates(module):
    graph = TaskGraph()
    graph.add(CountAnalysis())
    graph.add(Touch("t1", requires=["count"], invalidated=["count"]))
    graph.add(Touch("t2", requires=["count"], modify=False))
    pm = PassManager.from_task_graph(graph, ExecutionPolicy.PARALLEL)
    pm.run(module)
    assert not pm.has_analysis("count")