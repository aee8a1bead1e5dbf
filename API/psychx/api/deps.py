from psychx.agents.base import ContentGenerator
from psychx.agents.content import LLMContentGenerator

_generator: ContentGenerator | None = None


def get_content_generator() -> ContentGenerator:
    """FastAPI dependency; tests swap it through ``app.dependency_overrides``."""
    global _generator
    if _generator is None:
        _generator = LLMContentGenerator()
    return _generator
