"""Job lifecycle core for asynchronous video generation.

Components
~~~~~~~~~~
- ``repository``: the in-memory source of truth for every known job, with
  observers standing in for the presentation layer.
- ``poller``: one asyncio task per tracked job, capped by an admission
  queue, retrying only transient failures with bounded exponential backoff.
- ``artifacts``: streaming download of completed content into a partial
  file that is renamed into place after a flushed write.
- ``services``: the ``JobOrchestrator`` façade that callers use; it owns the
  repository and poller, and deduplicates concurrent downloads.

Everything runs on one event loop. The orchestrator is constructed
explicitly by its consumer and torn down with ``shutdown()``.
"""
