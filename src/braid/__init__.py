"""braid - branch merge and sync workflows with conflict analysis."""

__version__ = "0.1.0"
