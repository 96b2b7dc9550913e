import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def load_prompt_template(name: str) -> Dict[str, Any]:
    """Load a prompt template and its output example from JSON file."""
    template_path = Path(__file__).parent.parent / "prompts" / f"{name}.json"
    with open(template_path, encoding="utf-8") as f:
        return json.load(f)


def render_template(template: str | None, **kwargs: Any) -> str:
    if not template or not isinstance(template, str):
        return ""
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError, ValueError):
        logger.warning("Prompt template could not be rendered; using it verbatim.")
        return template


def system_prompt(name: str, **kwargs: Any) -> str:
    """Return the rendered system prompt followed by the exact JSON shape expected."""
    config = load_prompt_template(name)
    text = render_template(config.get("system_prompt"), **kwargs)
    example = config.get("output_example")
    if example is not None:
        text = (
            f"{text}\n\nAlways answer with pure JSON in exactly this shape:\n"
            f"{json.dumps(example, indent=2, ensure_ascii=False)}"
        )
    return text
