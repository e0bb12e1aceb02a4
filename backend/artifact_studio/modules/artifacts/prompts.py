from __future__ import annotations

from .deltas import ArtifactKind

TEXT_PROMPT = "Write about the given topic. Markdown is supported. Use headings wherever appropriate."

CODE_PROMPT = """\
You are a Python code generator that creates self-contained, executable code snippets. When writing code:

1. Each snippet should be complete and runnable on its own
2. Prefer using print() statements to display outputs
3. Include helpful comments explaining the code
4. Keep snippets concise (generally under 15 lines)
5. Avoid external dependencies - use Python standard library
6. Handle potential errors gracefully
7. Return meaningful output that demonstrates the code's functionality
8. Don't use input() or other interactive functions
9. Don't access files or network resources
10. Don't use infinite loops
"""

SLIDE_PROMPT = """\
You are a presentation designer. Build a concise slide deck for the requested topic.
Give the deck a title and between 4 and 10 slides. Each slide has a short title and
3 to 5 bullet points of plain text.
"""

CHART_PROMPT = """\
You are a data visualisation assistant. Produce a chart configuration for the request.
Pick the chart type that best fits the data (bar, line, pie, scatter, area or doughnut),
give it a title and provide the data as a list of records sharing the same keys.
Name the x-axis and y-axis fields when the chart type uses axes.
"""

STRICT_JSON_SUFFIX = "\n\nCRITICAL: You MUST return ONLY a valid JSON object, not CSV or other formats."

STRICT_JSON_PROMPT_HINT = ' (Return ONLY valid JSON in the format {"type": "bar", "title": "...", "data": [...], ...})'

_UPDATE_SUBJECTS = {
    ArtifactKind.TEXT: "contents of the document",
    ArtifactKind.CODE: "code snippet",
    ArtifactKind.SLIDE: "presentation (JSON)",
    ArtifactKind.CHART: "chart configuration (JSON)",
}


def update_document_prompt(current_content: str | None, kind: ArtifactKind) -> str:
    subject = _UPDATE_SUBJECTS[kind]
    return f"Improve the following {subject} based on the given prompt.\n\n{current_content or ''}\n"


def update_chart_prompt(current_content: str | None, description: str) -> str:
    return (
        f"{CHART_PROMPT}\n"
        "Here is the current chart configuration:\n\n"
        f"{current_content or '{}'}\n\n"
        f"Apply this change and return the complete updated configuration: {description}\n"
    )
