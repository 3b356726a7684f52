"""Feed synchronization and caching engine for a personal RSS/Atom reader."""

__version__ = "0.3.0"
