"""In/Out Board: live presence board with push updates to every viewer."""

__version__ = "1.2.0"
