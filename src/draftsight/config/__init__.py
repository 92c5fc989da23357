"""Configuration constants package.

- vision: thresholds, strides and tolerances for the matchers and loop
"""
