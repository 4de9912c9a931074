"""Schema package exports."""

from .course import ClarifyingQuestion, Course, CourseMetadata, Difficulty, LessonIdea, Pace
from .screens import Lesson, Screen, describe_screen, encode_screen, lesson_outline, normalize_screen

__all__ = ["ClarifyingQuestion", "Course", "CourseMetadata", "Difficulty", "Lesson", "LessonIdea", "Pace", "Screen", "describe_screen", "encode_screen", "lesson_outline", "normalize_screen"]
