from .service import DomainAdjustment, EstimatorService

__all__ = ["DomainAdjustment", "EstimatorService"]
