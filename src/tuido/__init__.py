"""
tuido - offline-first task manager

A command-line task manager that keeps a local mirror of a remote task
service and queues changes until they can be synced.
"""

__version__ = "0.3.0"

# Re-export core models for convenience
from tuido.core.models import Command, CommandStatus, Project, Task

__all__ = ["Command", "CommandStatus", "Project", "Task", "__version__"]
