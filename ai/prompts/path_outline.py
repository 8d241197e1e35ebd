# ai/prompts/path_outline.py
"""Prompt for the learning-path skeleton (title, topic tree, lesson count)."""

FILE_CONTEXT = """Based on this content:

{file_excerpt}

"""

PATH_OUTLINE = """Create a structured learning path on: "{prompt}". Difficulty: {difficulty}.
{difficulty_note}
Return JSON with:
- title (string)
- description (string)
- topics (array of {{"title": string, "subtopics": string[]}})
- total_lessons (number, at least {min_lessons})

Return only the JSON object.
"""
