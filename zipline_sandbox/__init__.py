"""
Zipline sandbox: per-user transient file staging and bounded retrieval.
"""

__version__ = "0.1.0"
