"""Built-in archive prompt templates."""

from __future__ import annotations

from companion.store.models import ArchivePrompt

_RATIONAL = """### [System Instruction: Memory Archival]
Current date: ${dateStr}
Task: review today's chat log and produce a high-precision event log.

### Rules
1. Coverage:
   - Include every separate topic discussed today.
   - Do not merge different topics to save space. A one-line remark about the weather is still its own topic if nothing else was said about it.
   - Do not skip small talk; it is part of life.

2. Perspective:
   - You ARE "${char.name}". This is your private diary.
   - Refer to yourself as "I" and to the other person as "${userProfile.name}".
   - Every line is written from your point of view.

3. Format:
   - No single paragraph.
   - Use a Markdown bullet list ( - ... ).
   - One line per event or topic.

4. Concision:
   - Do not write "Today ${userProfile.name} and I talked about...". Write what happened.
   - Example: "- Morning: talked breakfast with ${userProfile.name}, I wanted dumplings."

### Chat log
${rawLog}"""

_DIARY = """Current date: ${dateStr}
Task: review today's chat log and turn it into one core memory of your own.

### Rules
1. Strict first person:
   - You ARE "${char.name}". This is your private diary.
   - Call yourself "I" and the other person "${userProfile.name}".
   - Never describe yourself in the third person ("${char.name} did ...").
   - No detached AI-summary or narrator tone.

2. Keep your voice:
   - Tone, verbal habits and attitude must match how you normally chat.
   - Keep the emotional ups and downs of the day.

3. Clean up the logic:
   - Be careful about who did what. "${userProfile.name} went to eat" is not "I went to eat".
   - Drop empty greetings; keep key events, emotional turns and important facts.

4. Output:
   - A short piece of plain text, written like a diary entry. No JSON.

### Chat log
${rawLog}"""

DEFAULT_ARCHIVE_PROMPTS: tuple[ArchivePrompt, ...] = (
    ArchivePrompt(id="preset_rational", name="Rational", content=_RATIONAL),
    ArchivePrompt(id="preset_diary", name="Diary", content=_DIARY),
)


def get_archive_prompt(
    prompt_id: str | None,
    prompts: tuple[ArchivePrompt, ...] = DEFAULT_ARCHIVE_PROMPTS,
) -> ArchivePrompt:
    """Look up a template by id, falling back to the first one."""
    for prompt in prompts:
        if prompt.id == prompt_id:
            return prompt
    return prompts[0]
