"""Core HR module — Employee model and the read-only employee directory."""

from hrops.core_hr.models import Employee

__all__ = ["Employee"]
