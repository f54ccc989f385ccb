"""
Calendar statistics.

- aggregator.py: per-day completion buckets (bulk fold + incremental updates)
"""
