from scanning.tasks import TaskRegistry, TaskState, TaskType


class TestTaskRegistry:
    def test_ids_are_strictly_increasing(self):
        registry = TaskRegistry()
        first = registry.create_task("a", None, TaskType.SCAN_ENDPOINT)
        second = registry.create_task("a", None, TaskType.SCAN_ENDPOINT)
        third = registry.create_task("b", None, TaskType.SCAN_TEMPLATES)

        assert first.id < second.id < third.id
        assert first.state == TaskState.IDLE

    def test_create_does_not_store(self):
        registry = TaskRegistry()
        task = registry.create_task("a", None, TaskType.SCAN_ENDPOINT)

        assert registry.get(task.id) is None
        assert len(registry) == 0

    def test_set_get_delete(self):
        registry = TaskRegistry()
        task = registry.create_task("a", None, TaskType.SCAN_ENDPOINT)
        registry.set(task)

        assert registry.get(task.id) is task

        task.state = TaskState.IN_PROGRESS
        registry.set(task)
        assert len(registry) == 1
        assert registry.get(task.id).state == TaskState.IN_PROGRESS

        registry.delete(task.id)
        assert registry.get(task.id) is None
        registry.delete(task.id)

    def test_find_is_the_dedup_guard(self):
        registry = TaskRegistry()
        assert registry.find("a", TaskType.SCAN_ENDPOINT) is None

        task = registry.create_task("a", None, TaskType.SCAN_ENDPOINT)
        registry.set(task)

        assert registry.find("a", TaskType.SCAN_ENDPOINT) is task
        assert registry.find("a", TaskType.SCAN_TEMPLATES) is None
        assert registry.find("b", TaskType.SCAN_ENDPOINT) is None

    def test_empty_by_owner_and_name(self):
        registry = TaskRegistry()
        owner, other = object(), object()
        registry.set(registry.create_task("a", owner, TaskType.SCAN_ENDPOINT))

        assert not registry.empty(owner)
        assert not registry.empty(owner, "a")
        assert registry.empty(owner, "b")
        assert registry.empty(other)
        assert registry.empty(other, "a")

    def test_tasks_iterates_a_copy(self):
        registry = TaskRegistry()
        for name in ("a", "b"):
            registry.set(registry.create_task(name, None, TaskType.SCAN_ENDPOINT))

        for task in registry.tasks:
            registry.delete(task.id)

        assert len(registry) == 0

    def test_on_empty_after_last_task_of_owner(self):
        registry = TaskRegistry()
        owner, other = object(), object()
        idle = []
        registry.on_empty = idle.append
        first = registry.create_task("a", owner, TaskType.SCAN_ENDPOINT)
        second = registry.create_task("b", owner, TaskType.SCAN_ENDPOINT)
        third = registry.create_task("a", other, TaskType.SCAN_TEMPLATES)
        for task in (first, second, third):
            registry.set(task)

        registry.delete(first.id)
        assert idle == []

        registry.delete(second.id)
        registry.delete(second.id)
        assert idle == [owner]

        registry.delete(third.id)
        assert idle == [owner, other]
