"""buildflow - declarative build task orchestrator."""

__version__ = "1.0.0"
