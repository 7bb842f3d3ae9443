"""
Live streaming domain logic.

Includes:
- stream: Stream registry, stream keys and the idle/live/ended lifecycle.
"""
