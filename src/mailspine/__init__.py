"""
mail-spine - scheduled bulk e-mail dispatch with durable per-recipient tracking.

Sub-packages:
- mailspine.core: settings, logging, errors, state machines, durable store
- mailspine.delivery: the send collaborator (SMTP / mock transports)
- mailspine.execution: worker pool, completion tracking, job dispatcher
- mailspine.scheduling: the periodic scheduler loop
- mailspine.ops: service-layer operations (schedule/list jobs, import subscribers)
- mailspine.api / mailspine.cli: HTTP and command-line surfaces
"""

__version__ = "0.1.0"
