import re

from .types import SkillOutput

KEY_PLACEHOLDER_MAX_CHARS = 8000
SKILL_BLOCK_MAX_CHARS = 6000
TRUNCATION_MARKER = "\n... [truncated]"
SKILL_OUTPUTS_KEY = "skill_outputs"

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


def clip(content: str, max_chars: int) -> str:
    if len(content) > max_chars:
        return content[:max_chars] + TRUNCATION_MARKER
    return content


def build_synthesis_prompt(
        template: str,
        outputs: dict[str, SkillOutput],
        key_max_chars: int = KEY_PLACEHOLDER_MAX_CHARS,
        block_max_chars: int = SKILL_BLOCK_MAX_CHARS,
) -> str:
    """Fill ``{{<output_key>}}`` and ``{{skill_outputs}}`` placeholders.

    Each output falls back to its summary when the full output is empty.
    ``{{skill_outputs}}`` expands to one ``## <skill_id>`` block per output in
    step order. Unknown placeholders are left as they are. Substitution is a
    single pass over the template, so placeholder text inside a skill output
    is never expanded.
    """
    blocks = "\n\n---\n\n".join(
        f"## {output.skill_id}\n{clip(output.content, block_max_chars)}"
        for output in outputs.values()
    )

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in outputs:
            return clip(outputs[key].content, key_max_chars)
        if key == SKILL_OUTPUTS_KEY:
            return blocks
        return match.group(0)

    return _PLACEHOLDER.sub(substitute, template)
