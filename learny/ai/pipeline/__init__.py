"""Pipeline contracts."""

from learny.ai.pipeline.contracts import ClarificationRequest, CourseRequest, GenerationUnit, UnitDescriptor

__all__ = ["ClarificationRequest", "CourseRequest", "GenerationUnit", "UnitDescriptor"]
