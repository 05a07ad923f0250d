"""
GrantMatch
Grant discovery matching engine: query interpretation, batched LLM scoring,
preference boosting and ranked, explained results.
"""

__version__ = "1.0.0"
