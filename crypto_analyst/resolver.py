"""Asset symbol and name resolution."""

from __future__ import annotations

import re

from crypto_analyst.config import section
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("resolver")


class AssetResolver:
    """Resolve user input like 'BTC' or 'Shiba Inu' to a provider asset id."""

    def __init__(self, aliases: dict | None = None):
        source = section("aliases") if aliases is None else aliases
        self._aliases = {str(k).lower(): str(v) for k, v in source.items()}

    def resolve(self, user_input: str) -> str:
        key = user_input.strip().lower()
        if not key:
            raise ValueError("Asset identifier must not be empty")
        if key in self._aliases:
            resolved = self._aliases[key]
            logger.info("Resolved alias '%s' -> '%s'", user_input, resolved)
            return resolved
        return re.sub(r"\s+", "-", key)

    def resolve_many(self, inputs: list[str]) -> list[str]:
        return [self.resolve(i) for i in inputs]
