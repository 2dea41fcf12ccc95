"""Client-side orchestration for asynchronous video generation jobs."""

__version__ = "0.1.0"
