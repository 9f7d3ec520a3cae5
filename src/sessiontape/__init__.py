"""Session capture and sandboxed replay for rendered documents."""

__version__ = "0.1.0"
