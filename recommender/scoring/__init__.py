"""
Scoring strategies.

Responsibilities:
- Define the single ``score(item, criteria)`` capability every strategy implements.
- Provide the deterministic keyword, budget and capacity rules.
- Reward popular, well-reviewed packages from cached aggregate stats.
- Add an optional LLM-rated semantic bonus that never blocks ranking.
"""
