"""Base classes for analysis results and passes that run over a module."""

from __future__ import annotations

import abc
import enum
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from arcir.ir import Module, Region


class ExecutionPolicy(enum.Enum):
    """How a pass manager runs independent passes."""

    SEQUENTIAL = enum.auto()
    PARALLEL = enum.auto()


class Analysis(abc.ABC):
    """Result produced by an analysis pass and cached by the pass manager."""

    @abc.abstractmethod
    def name(self) -> str:
        """Unique name of this analysis result."""

    def update(self, regions: Sequence["Region"]) -> bool:
        """Update incrementally for modified regions; False means recompute."""
        return False


class Pass(abc.ABC):
    """A unit of work run over a module."""

    @abc.abstractmethod
    def name(self) -> str:
        """Unique name used for dependency resolution."""

    def require(self) -> List[str]:
        """Names of passes that must run before this one."""
        return []

    def invalidates(self) -> List[str]:
        """Names of analyses that become stale after this pass."""
        return []


class AnalysisPass(Pass):
    """A read-only pass that produces a cached analysis result."""

    @abc.abstractmethod
    def run(self, module: "Module") -> Optional[Analysis]:
        """Analyse ``module`` and return the result."""


class TransformPass(Pass):
    """A pass that modifies the IR."""

    @abc.abstractmethod
    def run(self, module: "Module", pm) -> List["Region"]:
        """Transform ``module`` and return the regions that changed."""