"""Client for the community forum and marketplace backend."""

__version__ = "0.1.0"
