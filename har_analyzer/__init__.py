"""
HAR Analyzer - Token-budget-aware inspection of HTTP Archive (HAR) captures.

This package provides tools for:
- Parsing and indexing HAR files into lightweight per-entry records
- Persisting a small session descriptor shared across CLI and agent calls
- Filtering, searching, and analyzing captured traffic
- Virtualizing large headers/bodies behind expandable reference tokens
"""

__version__ = "1.0.0"
