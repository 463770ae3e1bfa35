"""
CourseTrack - course attendance, enrollment and grading backend.

Teachers declare section-based student ID ranges, take attendance per
section, run class tests and enter marks; students and reports consume the
derived attendance percentages and best-K class test averages.
"""

__version__ = "1.0.0"
