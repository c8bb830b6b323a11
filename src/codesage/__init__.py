"""CodeSage - local retrieval-augmented context for source trees."""

__version__ = "0.1.0"
