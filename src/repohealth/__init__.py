"""Repository health scoring with a bounded response cache."""

__version__ = "0.1.0"
