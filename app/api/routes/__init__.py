from . import jobs, projects, tasks

__all__ = ["jobs", "projects", "tasks"]
