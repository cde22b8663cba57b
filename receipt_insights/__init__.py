"""Receipt Insights: receipt capture, expense storage, and asynchronous spend analysis."""

__version__ = "1.0.0"
