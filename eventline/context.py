"""
EventContext - Shared data container that flows through the event chain.
"""

from .exceptions import KeyNotFound

_MISSING = object()


class EventContext:
    """
    A shared key-value store that flows through the entire chain.
    Enables communication between sequential events.

    Values are opaque: the context performs no validation or coercion, and
    keeping the key namespace consistent is up to the events and middleware
    that use it. Keys starting with '_' are reserved for chain markers.
    """

    def __init__(self, data=None):
        """
        Initialize the EventContext with optional initial data.

        Args:
            data: Dictionary of initial context data (optional, copied)
        """
        self._data = dict(data) if data is not None else {}

    def get(self, key, default=_MISSING):
        """
        Get a value from the context.

        Args:
            key: The key to retrieve
            default: Value returned when the key is absent. Without it a
                missing key raises KeyNotFound.

        Returns:
            The value associated with the key, or default if given

        Raises:
            KeyNotFound: The key is absent and no default was given
        """
        try:
            return self._data[key]
        except KeyError:
            if default is _MISSING:
                raise KeyNotFound(key) from None
            return default

    def set(self, key, value):
        """
        Set a value in the context, overwriting any previous value.

        Returns:
            self (for method chaining)
        """
        self._data[key] = value
        return self

    def has(self, key):
        """Return True if the key exists in the context."""
        return key in self._data

    def remove(self, key):
        """
        Remove a key from the context. Missing keys are ignored.

        Returns:
            self (for method chaining)
        """
        self._data.pop(key, None)
        return self

    def keys(self):
        """Return all keys in the context."""
        return self._data.keys()

    def values(self):
        """Return all values in the context."""
        return self._data.values()

    def items(self):
        """Return all key-value pairs in the context."""
        return self._data.items()

    def to_dict(self):
        """Return a copy of the internal data dictionary."""
        return self._data.copy()

    def __contains__(self, key):
        return key in self._data

    def __len__(self):
        return len(self._data)

    def __repr__(self):
        return f"EventContext({self._data})"

    def __str__(self):
        return str(self._data)
