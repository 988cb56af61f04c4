"""
Reflecta API - Prompt Templates.

System prompts for the coaching pipeline, shipped as Markdown next to
this module and read once per process.
"""

from functools import lru_cache
from pathlib import Path

PROMPTS_DIR = Path(__file__).parent

MESSAGE_GENERATION = "message_generation"
OUTCOME_SIMULATION = "outcome_simulation"


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """
    Load a prompt template by name (without extension).

    Raises:
        FileNotFoundError: If no such template ships with the package.
    """
    path = PROMPTS_DIR / f"{name}.md"
    return path.read_text(encoding="utf-8")
