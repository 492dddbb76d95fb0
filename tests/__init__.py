"""Test suite for the vitamin D pregnancy meta-analysis.

Unit tests cover effect sizes, pooling, heterogeneity, subgroups and the
batch runner. To run the tests, execute `pytest` from the project root.
"""
