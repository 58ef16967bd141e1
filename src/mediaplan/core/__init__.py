"""Core functionality for mediaplan.

- path_safety: pure admission checks for rename and recognition plans.
- episode_matcher: maps video files to catalog season/episode numbers.
- apply: default rename executor used once a plan is confirmed.
- orchestrator: drives a plan from admission to completed or rejected.

Submodules are imported directly; this package does not re-export them because
the models import path_safety at class-definition time.
"""
