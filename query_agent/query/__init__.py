"""Query translation: prompts, placeholders and the NL translator."""

from query_agent.query.placeholders import resolve_placeholders
from query_agent.query.prompt_generator import PromptGenerator
from query_agent.query.translator import QueryTranslator

__all__ = ["PromptGenerator", "QueryTranslator", "resolve_placeholders"]
