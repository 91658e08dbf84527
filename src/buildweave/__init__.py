"""buildweave — keep per-directory build rule files in sync with the source tree."""

__version__ = "0.3.0"
