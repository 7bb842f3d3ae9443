"""
Domain layer containing core business logic and domain services.

Submodules:
- live: Live stream registry and broadcast lifecycle.
- vod: VOD conversion pipeline and VOD management.
- access: Entitlements and signed playback grants.
- moderation: Appeals bridged to the AI moderation review.
- utils: Domain-specific utilities (ID generation, time).
"""
