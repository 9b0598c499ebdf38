"""Content source monitoring: snapshot comparison and monitor lifecycle."""

__version__ = "0.1.0"
