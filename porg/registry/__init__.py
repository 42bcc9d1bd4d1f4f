"""Token metadata registries."""
from .token_list import HttpTokenRegistry

__all__ = ["HttpTokenRegistry"]
