"""Repository janitor: audit and bulk-archive remote repositories from a terminal."""

__version__ = "0.1.0"
