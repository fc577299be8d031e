"""ROMnibus: a reference catalog mapping ROM content and filenames to games."""

__version__ = "0.1.0"
