"""
Cleanup App - Index Retention

Responsibilities:
- Delete documents older than a retention period from an index
- One delete-by-query per run, day-granular cutoff ("now-<N>d/d")
- No retry: a failed run is logged and the next firing tries again
"""
