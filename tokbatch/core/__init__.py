"""
Core application engine for resolving batches of links.

The `BatchSession` is the high-level coordinator; it delegates the paced,
group-by-group resolution of pending tasks to the `BatchScheduler`.
"""
