"""Provider list prices in USD, used for usage cost estimates only."""

EMBEDDING_PRICE_PER_1M_TOKENS = {
    "text-embedding-3-small": 0.02,
    "text-embedding-3-large": 0.13,
    "text-embedding-ada-002": 0.10,
}

VECTOR_QUERY_PRICE_PER_1M = 0.40
VECTOR_WRITE_PRICE_PER_1M = 2.00


def embedding_cost(tokens: int, model: str = "text-embedding-3-small") -> float:
    rate = EMBEDDING_PRICE_PER_1M_TOKENS.get(model, EMBEDDING_PRICE_PER_1M_TOKENS["text-embedding-3-small"])
    return (tokens / 1_000_000) * rate


def vector_query_cost(vector_count: int) -> float:
    return (vector_count / 1_000_000) * VECTOR_QUERY_PRICE_PER_1M


def vector_write_cost(vector_count: int) -> float:
    # Deletes are billed as write units too
    return (vector_count / 1_000_000) * VECTOR_WRITE_PRICE_PER_1M
