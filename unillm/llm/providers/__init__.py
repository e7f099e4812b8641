from unillm.llm.providers.base import Provider
from unillm.llm.providers.http import HTTPProvider

__all__ = ["HTTPProvider", "Provider"]
