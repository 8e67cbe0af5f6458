"""
idbridge - Numeric id translation for agent-facing email client data.

Agents see small integers (``[Email](4)``) instead of platform ids
(``imap://user@host/INBOX:8812``). The translation layer:
- Allocates stable numeric ids per session, reusing freed ones
- Reclaims ids when the conversation turns referencing them are evicted
- Persists the mapping across restarts (best effort)
- Merges maps produced by concurrent background (headless) sessions
"""

__version__ = "1.0.0"
