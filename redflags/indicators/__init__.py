"""Red-flag indicators R001-R006."""

from .base import BaseIndicator, Indicator
from .concentration import ConcentrationIndicator
from .modifications import ModificationsIndicator
from .non_competitive import NonCompetitiveIndicator
from .price_outliers import PriceOutliersIndicator
from .single_bid import SingleBidIndicator
from .splitting import SplittingIndicator

__all__ = [
    "BaseIndicator",
    "Indicator",
    "SingleBidIndicator",
    "NonCompetitiveIndicator",
    "SplittingIndicator",
    "ConcentrationIndicator",
    "ModificationsIndicator",
    "PriceOutliersIndicator",
]
