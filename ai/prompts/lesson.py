# ai/prompts/lesson.py
"""Prompt for a single lesson inside an existing learning path."""

LESSON = """Create lesson {lesson_number} about "{subtopic}" within "{topic_title}".
This is part of a learning path on "{path_title}". Difficulty: {difficulty}.
{difficulty_note}
Return JSON with:
- explanations ({explanation_count} items, each {{"title": string, "content": string}})
- quizzes ({quiz_count} items, each {{"question": string, "options": string[], "correctAnswer": string}})

Every correctAnswer must be copied exactly from its options.
Return only the JSON object.
"""
