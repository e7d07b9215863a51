"""
Event package recommendation engine.

Responsibilities:
- Score catalog items against a caller's criteria profile with pluggable strategies.
- Combine strategy points into a deterministic, best-first ranking.
- Cache ranked results under a canonical, representation-independent key.
- Degrade gracefully when the semantic (LLM) scorer or cache store is unavailable.
"""
