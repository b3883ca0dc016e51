"""
stackgrader: Automated grading of student full-stack web projects

A grading pipeline that probes an unknown student project over HTTP and by
static inspection, reduces the probe outcomes to rubric scores, blends them
with GPT-4o qualitative judgments and scores the git history.
"""

__version__ = "0.1.0"
