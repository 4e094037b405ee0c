"""
Bubble Monitor - error event ingestion

Authenticates batches of client-reported error occurrences, groups them
by fingerprint, tracks affected users and keeps a sampled set of
full-detail occurrences for the monitoring dashboard.
"""

__version__ = "0.1.0"
