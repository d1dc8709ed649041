import random
from typing import Any, List, Optional, Sequence

from .errors import ConfigurationError, InsufficientTasksError
from .state import TaskAssignment


def _task_fields(task: Any):
    if isinstance(task, dict):
        return str(task['id']), task['content']
    return str(task.id), task.content


def build_task_queue(
    player_order: Sequence[str],
    tasks: Sequence[Any],
    tasks_per_player: int,
    rng=None,
) -> List[TaskAssignment]:
    """Expand a rotation and a prompt pool into the full game queue.

    Each player gets ``tasks_per_player`` consecutive prompts, in rotation
    order. Prompts come from one shuffled sample of the pool, so no prompt
    appears twice in a game. Raises InsufficientTasksError instead of
    building a truncated queue.
    """
    if not player_order:
        raise ConfigurationError('At least one player is required')
    if tasks_per_player < 1:
        raise ConfigurationError('tasks_per_player must be at least 1')

    needed = len(player_order) * tasks_per_player
    if len(tasks) < needed:
        raise InsufficientTasksError(needed, len(tasks))

    sample = (rng or random).sample(list(tasks), needed)
    queue = []
    for slot, player_id in enumerate(player_order):
        for task in sample[slot * tasks_per_player:(slot + 1) * tasks_per_player]:
            task_id, content = _task_fields(task)
            queue.append(TaskAssignment(narrator_id=str(player_id), task_id=task_id, task_content=content))
    return queue
