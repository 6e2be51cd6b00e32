"""DocSQL: hybrid document search and a read-only SQL sandbox behind one agent router."""

__version__ = "0.1.0"
