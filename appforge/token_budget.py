"""Generation token ceilings per model family.

Maps a model name to the maximum number of output tokens a single generation
may request. Matching is a case-insensitive substring test, longest key
first, so ``"claude-3-5-sonnet"`` is not shadowed by a shorter family key.
"""

from __future__ import annotations

from typing import Optional

DEFAULT_MAX_TOKENS = 8192

# Values are each family's real output maximum.
MODEL_TOKEN_LIMITS: dict[str, int] = {
    # Anthropic
    "claude-opus-4": 32000,
    "claude-sonnet-4": 64000,
    "claude-3-7-sonnet": 64000,
    "claude-3-5-sonnet": 8192,
    "claude-3-5-haiku": 8192,
    "claude-haiku-4": 64000,
    "claude-3-opus": 4096,
    "claude-3-haiku": 4096,
    # OpenAI
    "gpt-4.1": 32768,
    "gpt-4o-mini": 16384,
    "gpt-4o": 16384,
    "gpt-4-turbo": 4096,
    "gpt-5": 128000,
    "o4-mini": 100000,
    "o3": 100000,
    # Local / open-weight families
    "qwen2.5-coder": 8192,
    "qwen3-coder": 65536,
    "deepseek-coder": 8192,
    "codellama": 4096,
    "llama3": 8192,
}


class TokenBudgetResolver:
    """Resolves token ceilings from an injectable model table."""

    def __init__(
        self,
        limits: Optional[dict[str, int]] = None,
        default: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.limits = dict(MODEL_TOKEN_LIMITS if limits is None else limits)
        self.default = default

    def resolve(self, model: Optional[str], override: int = 0) -> int:
        """Return the token ceiling for *model*.

        A positive *override* is returned verbatim; zero or negative overrides
        fall through to the table. Unknown models get the default.
        """
        if override and override > 0:
            return override
        if not model:
            return self.default
        name = model.lower()
        for key in sorted(self.limits, key=len, reverse=True):
            if key in name:
                return self.limits[key]
        return self.default


_DEFAULT_RESOLVER = TokenBudgetResolver()


def resolve(model: Optional[str], override: int = 0) -> int:
    """Resolve against the built-in table."""
    return _DEFAULT_RESOLVER.resolve(model, override)
