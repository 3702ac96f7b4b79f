"""Build minimal, non-root container images for the LSP server."""

__version__ = "0.1.0"
