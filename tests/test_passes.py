import pytest

from arcir.ir import Module
from arcir.passes import Analysis, AnalysisPass, ExecutionPolicy, Pass, TransformPass


class CountResult(Analysis):
    def __init__(self, count=0):
        self.count = count

    def name(self):
        return "count"


class CountPass(AnalysisPass):
    def name(self):
        return "count"

    def run(self, module):
        return CountResult(len(module.root.nodes))


class NoopTransform(TransformPass):
    def name(self):
        return "noop"

    def require(self):
        return ["count"]

    def invalidates(self):
        return ["count"]

    def run(self, module, pm):
        return [module.root]


def test_base_classes_are_abstract():
    with pytest.raises(TypeError):
        Pass()
    with pytest.raises(TypeError):
        Analysis()
    with pytest.raises(TypeError):
        AnalysisPass()
    with pytest.raises(TypeError):
        TransformPass()


def test_default_require_and_invalidates_are_empty():
    p = CountPass()
    assert Pass.require(p) == []
    assert Pass.invalidates(p) == []
    assert AnalysisPass.require(p) == []
    assert AnalysisPass.invalidates(p) == []


def test_analysis_update_defaults_to_full_recompute():
    module = Module("m")
    result = CountResult()
    assert Analysis.update(result, [module.root]) is False
    assert Analysis.update(result, []) is False


def test_analysis_pass_runs_on_module():
    module = Module("m")
    result = CountPass().run(module)
    assert result.name() == "count"
    assert result.count == len(module.root.nodes)


def test_transform_pass_overrides():
    module = Module("m")
    t = NoopTransform()
    assert t.require() == ["count"]
    assert t.invalidates() == ["count"]
    assert t.run(module, None) == [module.root]
    assert isinstance(t, Pass) and not isinstance(t, AnalysisPass)


def test_execution_policies_are_distinct():
    sequential = ExecutionPolicy(ExecutionPolicy.SEQUENTIAL.value)
    parallel = ExecutionPolicy(ExecutionPolicy.PARALLEL.value)
    assert sequential is ExecutionPolicy.SEQUENTIAL
    assert parallel is ExecutionPolicy.PARALLEL
    assert sequential is not parallel
    assert [p.name for p in ExecutionPolicy] == ["SEQUENTIAL", "PARALLEL"]