"""Vitamin D in pregnancy meta-analysis (vdma).

Random-effects pooling of trial summary statistics for the systematic
review of vitamin D supplementation during pregnancy, together with the
forest, funnel, risk-of-bias and contribution figures that accompany it.
"""

__version__ = "0.1.0"
