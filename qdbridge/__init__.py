"""Host-side protocol library for a debug bridge to embedded devices: messages, transport, connections and streams."""

__version__ = "0.1.0"