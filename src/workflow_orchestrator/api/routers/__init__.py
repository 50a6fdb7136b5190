"""API routers"""

from . import instances, tasks, workflows, maintenance

__all__ = ["instances", "tasks", "workflows", "maintenance"]
