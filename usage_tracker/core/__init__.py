"""
Core modules for usage tracking.

This package contains daily aggregation, flush scheduling and the
environment context attached to each bucket.
"""
