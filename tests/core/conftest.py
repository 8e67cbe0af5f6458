"""
Core test fixtures - contexts prepared for the allocator scenarios.
"""

import pytest

from idbridge.core.context import TranslationContext


@pytest.fixture
def sparse_context():
    """Ids 4 and 6 mapped, nothing else (malformed-reference scenarios)."""
    ctx = TranslationContext()
    ctx.restore(entries=[(4, "r4"), (6, "r6"), (7, "r7")], next_numeric_id=8)
    return ctx
