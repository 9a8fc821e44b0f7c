"""Price estimates for embedding requests."""
from typing import Callable, Optional
import tiktoken

TOKEN_COST = 0.0004 / 1000  # USD per token
ENCODING_NAME = "cl100k_base"

TokenCounter = Callable[[str], int]

_encoding = None


def count_tokens(text: str) -> int:
    """Count tokens with the ``cl100k_base`` encoding."""
    global _encoding
    if _encoding is None:
        _encoding = tiktoken.get_encoding(ENCODING_NAME)
    return len(_encoding.encode(text, allowed_special="all"))


def estimate_cost(text: str, counter: Optional[TokenCounter] = None) -> float:
    """Estimated USD cost of embedding ``text``.

    Args:
        text: Text that would be sent to the provider
        counter: Token counter (defaults to tiktoken)
    """
    if not text:
        return 0.0
    counter = counter or count_tokens
    return TOKEN_COST * counter(text)
