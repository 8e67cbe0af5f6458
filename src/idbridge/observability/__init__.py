"""
idbridge - Observability.

Provides:
- JSONL session event log for allocator lifecycle events
"""

from idbridge.observability.session_logger import SessionLogger

__all__ = [
    "SessionLogger",
]
