"""
Ranking and result caching.

Responsibilities:
- Define the criteria, catalog item and ranked result models.
- Canonicalize criteria into stable cache keys and store ranked results with a TTL.
- Run every registered scoring strategy over the candidates and sort best-first.
- Adapt tabular catalog and booking/review data into engine inputs.
"""
