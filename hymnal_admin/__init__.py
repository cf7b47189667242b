"""Admin tooling for the digital hymnal's Firebase backend."""

__version__ = '1.0.0'
