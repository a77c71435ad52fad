"""Recommendation pipeline for CartRec.

This module contains the domain models, the product and user readers, the
result cache, the harmful ingredient resolver, the health and budget filters,
candidate ranking and the recommendation engine that ties them together.
"""
