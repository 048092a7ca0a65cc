"""
Calcverse Estimation Package

Rule-driven estimators behind the Calcverse calculators.
Composes base values, modifiers, line items and conditional fees into
priced results with derived recommendations.
"""

__version__ = "1.0.0"
