from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Optional


class TaskType(str, Enum):
    SCAN_ENDPOINT = "ScanEndpoint"
    SCAN_TEMPLATES = "ScanTemplates"


class TaskState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "inProgress"


@dataclass
class Task:
    """Bookkeeping record of one scan"""
    id: int
    endpoint_name: str
    owner: object
    type: TaskType
    state: TaskState = TaskState.IDLE
    start: int = 0
    end: int = 0


class TaskRegistry:
    """스캔 작업 레지스트리 (endpoint, type) 당 최대 하나"""

    def __init__(self):
        self._tasks: Dict[int, Task] = {}
        self._next_task_id = 1
        # 소유자의 마지막 작업이 삭제되면 호출
        self.on_empty: Optional[Callable[[object], None]] = None

    @property
    def tasks(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)

    def create_task(self, endpoint_name: str, owner: object, type: TaskType) -> Task:
        task_id = self._next_task_id
        self._next_task_id += 1
        return Task(id=task_id, endpoint_name=endpoint_name, owner=owner, type=type)

    def set(self, task: Task) -> None:
        self._tasks[task.id] = task

    def get(self, task_id: int) -> Optional[Task]:
        return self._tasks.get(task_id)

    def delete(self, task_id: int) -> None:
        task = self._tasks.pop(task_id, None)
        if task is not None and self.on_empty is not None and self.empty(task.owner):
            self.on_empty(task.owner)

    def find(self, endpoint_name: str, type: TaskType) -> Optional[Task]:
        for task in self._tasks.values():
            if task.endpoint_name == endpoint_name and task.type == type:
                return task
        return None

    def empty(self, owner: object, name: Optional[str] = None) -> bool:
        for task in self._tasks.values():
            if task.owner is owner and (name is None or task.endpoint_name == name):
                return False
        return True
