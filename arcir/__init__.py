"""Region-based intermediate representation: types, IR containers, a node builder, a task graph and a pass manager."""

__version__ = "0.1.0"

__all__ = ["builder", "ir", "pass_manager", "passes", "strings", "taskgraph", "types"]