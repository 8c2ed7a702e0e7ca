"""
LifeSync sensor engine: device usage signals turned into wellbeing points
"""

__version__ = "1.0.0"
