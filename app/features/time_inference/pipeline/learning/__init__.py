from .service import CorrectionLearner

__all__ = ["CorrectionLearner"]
