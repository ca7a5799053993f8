"""StudyTree API: PDF study material → knowledge tree, O/X assessment, study guides."""

__version__ = "0.1.0"
