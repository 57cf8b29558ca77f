"""Registry of backfill tasks, keyed by CLI name."""

from typing import Dict

from . import crate_size, edition, features, lib_bin, links, version_metadata
from .common import BackfillTask

TASKS: Dict[str, BackfillTask] = {
    module.TASK.name: module.TASK
    for module in (crate_size, edition, features, lib_bin, links, version_metadata)
}


def get_task(name: str) -> BackfillTask:
    try:
        return TASKS[name]
    except KeyError:
        raise ValueError(f"Unknown task {name!r}. Choose from: {', '.join(sorted(TASKS))}")
