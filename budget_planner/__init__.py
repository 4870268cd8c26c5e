"""
Weekly Budget Planner - Source Package

Plans a weekly budget per spending category, tracks expenses against it,
and rolls allocations forward from one week to the next.

DESIGN PRINCIPLES:
1. One definition of "week" (anchored on Wednesday) used everywhere
2. One allocation row per week and category, written by upsert only
3. Validate before any write, never silently fix input
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Weekly Budget Planner Team"
