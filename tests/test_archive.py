"""Archive and restore cascade."""
from unittest.mock import patch

import pytest

from taskhub.core.errors import NotFound, PermissionDenied
from taskhub.models.task import Task, TaskAssignment
from taskhub.services import archive as archive_service
from taskhub.services import tasks as task_service


@pytest.fixture
def family(db, make_task, task_payload):
    """A parent task with two subtasks and one grandchild."""
    parent = make_task()
    first = task_service.create_subtask(db, parent, task_payload(title="First"), "u-alice")
    second = task_service.create_subtask(db, parent, task_payload(title="Second"), "u-alice")
    grandchild = task_service.create_subtask(db, first, task_payload(title="Nested"), "u-alice")
    return parent, first, second, grandchild


def _archived(db, task_id):
    db.expire_all()
    return db.get(Task, task_id).is_archived


class TestArchiveTask:

    def test_archives_task_and_direct_subtasks(self, db, family):
        parent, first, second, grandchild = family
        assert archive_service.archive_task(db, parent, True) == 3

        assert _archived(db, parent)
        assert _archived(db, first)
        assert _archived(db, second)
        assert not _archived(db, grandchild)

    def test_restore(self, db, family):
        parent, first, second, _ = family
        archive_service.archive_task(db, parent, True)
        assert archive_service.archive_task(db, parent, False) == 3
        assert not any(_archived(db, t) for t in (parent, first, second))

    def test_archive_twice_same_count(self, db, family):
        parent, first, second, _ = family
        assert archive_service.archive_task(db, parent, True) == 3
        assert archive_service.archive_task(db, parent, True) == 3
        assert all(_archived(db, t) for t in (parent, first, second))

    def test_assignments_untouched(self, db, family):
        parent = family[0]
        before = db.query(TaskAssignment).count()
        archive_service.archive_task(db, parent, True)
        assert db.query(TaskAssignment).count() == before

    def test_missing_task(self, db):
        with pytest.raises(NotFound, match="Task with ID 999 not found"):
            archive_service.archive_task(db, 999, True)


class TestArchiveTaskService:

    def test_manager_only(self, db, family, current_user):
        with pytest.raises(PermissionDenied, match="Only managers can archive tasks"):
            archive_service.archive_task_service(db, current_user("u-alice"), family[0], True)

    def test_publishes_event(self, db, family, current_user):
        with patch.object(archive_service.event_publisher, "publish_event") as publish:
            affected = archive_service.archive_task_service(db, current_user("u-maya"), family[0], True)
        assert affected == 3
        routing_key, data = publish.call_args.args
        assert routing_key == "task.archived"
        assert data["affected_count"] == 3
