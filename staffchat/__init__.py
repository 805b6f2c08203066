"""Staff messaging: REST service plus the client-side messaging core."""

__version__ = "0.1.0"
