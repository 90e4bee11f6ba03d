"""
Pipeline stages for time inference.

estimation -> learning adjustment -> classification -> entries -> review.
Estimation, classification and entry building are pure; learning and review
touch persistence through the repository ports.
"""

__all__ = ["classification", "entries", "estimation", "learning", "review"]
