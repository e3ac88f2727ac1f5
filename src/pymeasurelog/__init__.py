"""Local persistence and reactive query core for instrument measurements."""

__version__ = "0.1.0"
