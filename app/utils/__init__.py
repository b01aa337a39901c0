from app.utils.rounding import percentage, ratio_percent

__all__ = [
    "percentage",
    "ratio_percent",
]
