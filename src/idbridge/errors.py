"""
idbridge - Exceptions.

Lookup misses and malformed ids are NOT exceptions: the allocator returns
None for those. Exceptions are reserved for the storage boundary.
"""


class IdBridgeError(Exception):
    """Base class for idbridge errors."""


class PersistenceError(IdBridgeError):
    """A snapshot could not be loaded or saved.

    Raised by stores only. The session layer catches it: a failed load
    starts from an empty context, a failed save is retried on the next
    mutation.
    """
