"""Task variants the commands add to the task graph."""

from sprig.tasks.build import BuildTask
from sprig.tasks.deploy import DeployTask
from sprig.tasks.test import TestTask

__all__ = ["BuildTask", "DeployTask", "TestTask"]
