"""
TokBatch: resolve batches of short video links and pack the results into one archive.
"""

__version__ = "1.0.0"
