"""
ROI Utility
Derived display value shared by the runner and the value-scan artifact.
"""
import math


def compute_roi(confidence: float, scale: float) -> float:
    """confidence×100 × (log2(scale+1) + 1), rounded to 2 decimals."""
    base = confidence * 100
    multiplier = math.log2(scale + 1) + 1
    return round(base * multiplier, 2)


def roi_grade(roi: float) -> str:
    if roi >= 150:
        return "A+"
    if roi >= 100:
        return "A"
    if roi >= 50:
        return "B"
    return "C"
