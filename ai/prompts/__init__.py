# ai/prompts/__init__.py
from ai.prompts.path_outline import PATH_OUTLINE, FILE_CONTEXT
from ai.prompts.lesson import LESSON
from ai.prompts.difficulty import DIFFICULTY_NOTES

__all__ = ["PATH_OUTLINE", "FILE_CONTEXT", "LESSON", "DIFFICULTY_NOTES"]
