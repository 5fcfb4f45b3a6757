"""
Athena: A Policy-Gated Course Management Backend

Thin LMS backend that mediates course, assignment and submission operations
between callers, a hosted document store and an external policy decision point.
"""

__version__ = "1.0.0"
__author__ = "Athena Development Team"
__description__ = "Policy-gated course management backend"
