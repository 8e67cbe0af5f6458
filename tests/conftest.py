"""
Pytest configuration and fixtures for idbridge tests.
"""

import os

import pytest

# Set test environment before importing idbridge modules
os.environ["IDBRIDGE_ENV"] = "development"
os.environ["IDBRIDGE_EVENT_LOG"] = "false"

from idbridge.core.context import TranslationContext
from idbridge.memory.turns import ChatMeta
from idbridge.storage.store import IdMapSnapshot, MemoryIdMapStore


@pytest.fixture
def context():
    """Fresh, unpersisted translation context."""
    return TranslationContext()


@pytest.fixture
def change_calls(context):
    """Record every owner notification raised by ``context``."""
    calls: list[int] = []
    context.on_change = lambda: calls.append(1)
    return calls


@pytest.fixture
def mail_context():
    """Context with a small mailbox already mapped."""
    ctx = TranslationContext()
    ctx.restore(
        entries=[
            (1, "imap://alice@mail.example/INBOX:msg-1001"),
            (2, "imap://alice@mail.example/INBOX:msg-1002"),
            (3, "cal-home"),
            (4, "evt-dentist"),
            (5, "ab-personal"),
            (6, "contact-bob"),
        ],
        next_numeric_id=7,
    )
    return ctx


@pytest.fixture
def memory_store():
    return MemoryIdMapStore()


@pytest.fixture
def seeded_store():
    """Store holding a snapshot from a previous run."""
    return MemoryIdMapStore(
        IdMapSnapshot(
            entries=[(1, "msg-A"), (2, "msg-B"), (4, "msg-D")],
            next_numeric_id=5,
            free_ids=[3],
            ref_counts=[(1, 1), (2, 2), (4, 1)],
        )
    )


@pytest.fixture
def meta():
    return ChatMeta()
