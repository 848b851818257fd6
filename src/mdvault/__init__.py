"""mdvault — Markdown vault synchronization and document codec."""

__version__ = "0.1.0"
