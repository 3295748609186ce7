"""
Candlestick pattern recognition
"""

from .models import PatternName, PatternDetection
from .recognizer import PatternRecognizer

__all__ = ["PatternName", "PatternDetection", "PatternRecognizer"]
