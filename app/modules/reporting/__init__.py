from .domain.forecaster import ForecastModel, forecast
from .domain.normalizer import BillingDialect, BillingNormalizer
from .domain.service import CostForecastService

__all__ = ["ForecastModel", "forecast", "BillingDialect", "BillingNormalizer", "CostForecastService"]
