"""
Phase prompt templates.

Each phase has a markdown template in milhouse/prompts/<phase>.md filled in
with str.format(). Signal markers and JSON in the templates therefore need
doubled braces. Leading <!-- ... --> blocks list the variables a template
expects and are dropped before the prompt reaches the agent.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

_COMMENT = re.compile(r'<!--.*?-->\s*', re.DOTALL)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptError(Exception):
    """A phase template is missing, or rendering it failed."""


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    path = PROMPTS_DIR / f"{name}.md"
    if not path.is_file():
        raise PromptError(f"No template for '{name}' at {path}")
    logger.debug(f"[PROMPT] Loaded {path.name}")
    return _COMMENT.sub('', path.read_text()).lstrip()


def render_prompt(name: str, **values) -> str:
    """Fill template `name` with `values`.

    Raises:
        PromptError: If the template is missing or references an unknown variable
    """
    template = load_prompt(name)
    try:
        return template.format(**values)
    except KeyError as e:
        raise PromptError(f"Template '{name}' needs {e}; got {sorted(values)}") from e


def render(phase: str, data: Mapping[str, object]) -> str:
    """Render a phase prompt from its context data. An empty result is an error."""
    prompt = render_prompt(phase, **data)
    if not prompt.strip():
        raise PromptError(f"Prompt '{phase}' rendered empty")
    return prompt


def build_section(content: Optional[str], header: str, empty_msg: Optional[str] = None) -> str:
    """`header` followed by `content`, or by `empty_msg` when there is no content.

    With neither, the section is left out entirely.
    """
    body = content or empty_msg
    if body is None:
        return ""
    return f"{header}\n\n{body}\n"


def clear_cache() -> None:
    load_prompt.cache_clear()
