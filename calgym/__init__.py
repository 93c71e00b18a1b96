"""CalGym: gymnastics floor-routine grading for PE teachers."""

__version__ = "2.0.0"
