from .builder import EntryBuilder

__all__ = ["EntryBuilder"]
