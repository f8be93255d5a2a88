"""chatterm - persistent terminal chat sessions against a remote responses API."""

__version__ = "0.4.0"
