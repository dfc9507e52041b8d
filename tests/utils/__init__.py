"""
Test utilities for the log processor.
"""

from .payload_analyzer import PayloadAnalyzer

__all__ = ['PayloadAnalyzer']
