from .service import ActivityClassifier

__all__ = ["ActivityClassifier"]
