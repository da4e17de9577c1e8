"""Row-level task visibility by role."""
from taskhub.services import tasks as task_service
from taskhub.services.archive import archive_task
from taskhub.services.visibility import can_view_task, visible_tasks_query


def _visible_ids(db, user):
    return {t.id for t in visible_tasks_query(db, user).all()}


class TestVisibility:

    def test_staff_sees_created_and_assigned(self, db, make_task, current_user):
        created = make_task(creator_id="u-alice", assignee_ids=["u-bob"])
        assigned = make_task(creator_id="u-sam", assignee_ids=["u-alice"])
        other = make_task(creator_id="u-sam", assignee_ids=["u-sam"])

        assert _visible_ids(db, current_user("u-alice")) == {created, assigned}
        assert not can_view_task(db, current_user("u-alice"), other)

    def test_manager_sees_department_assignments(self, db, make_task, current_user):
        engineering = make_task(creator_id="u-sam", assignee_ids=["u-carl"])
        sales = make_task(creator_id="u-sam", assignee_ids=["u-sam"])

        visible = _visible_ids(db, current_user("u-maya"))
        assert engineering in visible
        assert sales not in visible

    def test_admin_sees_everything(self, db, make_task, current_user):
        ids = {
            make_task(creator_id="u-alice", assignee_ids=["u-bob"]),
            make_task(creator_id="u-sam", assignee_ids=["u-sam"]),
        }
        assert _visible_ids(db, current_user("u-adam")) == ids

    def test_archived_tasks_hidden(self, db, make_task, current_user):
        task_id = make_task()
        archive_task(db, task_id, True)

        assert _visible_ids(db, current_user("u-alice")) == set()
        assert task_service.get_task_by_id(db, current_user("u-alice"), task_id) is None
        assert task_id in {
            t.id for t in visible_tasks_query(db, current_user("u-alice"), include_archived=True)
        }

    def test_get_user_tasks_ordered_by_deadline(self, db, make_task, current_user):
        late = make_task(deadline="2031-01-01T00:00:00Z")
        early = make_task(deadline="2030-01-01T00:00:00Z")
        tasks = task_service.get_user_tasks(db, current_user("u-alice"))
        assert [t["id"] for t in tasks] == [early, late]
        assert tasks[0]["creator"]["user_info"] == {"first_name": "Alice", "last_name": "Tan"}

    def test_get_user_tasks_next_due(self, db, make_task, current_user):
        make_task(
            deadline="2030-01-01T09:00:00",
            recurrence_interval=7,
            recurrence_date="2029-12-01T09:00:00",
        )
        [task] = task_service.get_user_tasks(db, current_user("u-alice"), next_due=True)
        assert task["deadline"] == "2030-01-08T09:00:00+08:00"
