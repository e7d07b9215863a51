"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build prompts from a catalog item and the client's criteria.
- Call Groq to rate the semantic match on a 0-30 scale.
- Cache successful ratings and contain every failure.
"""
