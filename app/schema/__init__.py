"""Schema package exports."""

from .billing import CreditBalance, CreditJobReservation, CreditTransaction
from .heroes import Hero
from .jobs import Job, JobItem
from .projects import Page, PageVersion, Project

__all__ = ["CreditBalance", "CreditJobReservation", "CreditTransaction", "Hero", "Job", "JobItem", "Page", "PageVersion", "Project"]
