from .gate import ReviewGate

__all__ = ["ReviewGate"]
