"""
Pipeline Forge
==============

Generates CI/CD pipelines from measured project characteristics, plans and
runs the testing portion of those pipelines, and turns test results into
trend-aware quality reports.
"""

__version__ = "0.1.0"
