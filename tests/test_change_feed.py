import uuid

from taskboard.realtime.change_feed import (
    ChangeFeed,
    ChangeType,
    change_feed,
    channels_for,
    project_channel,
    task_channel,
)
from taskboard.services.task_service import TaskService
from tests.factories import make_project


def test_channels_for_rows():
    pid, tid = uuid.uuid4(), uuid.uuid4()

    assert channels_for("projects", {"id": pid}) == [project_channel(pid)]
    assert channels_for("tasks", {"id": tid, "project_id": pid}) == [project_channel(pid), task_channel(tid)]
    assert channels_for("subtasks", {"id": uuid.uuid4(), "task_id": tid}) == [task_channel(tid)]
    assert channels_for(
        "comments", {"entity_type": "task", "entity_id": tid, "project_id": pid}
    ) == [project_channel(pid), task_channel(tid)]
    assert channels_for(
        "comments", {"entity_type": "project", "entity_id": pid, "project_id": pid}
    ) == [project_channel(pid)]
    assert channels_for("activity_logs", {"project_id": pid}) == [project_channel(pid), "activity"]
    assert channels_for("activity_logs", {"project_id": None}) == ["activity"]


def test_publish_reaches_subscribers_of_each_channel():
    feed = ChangeFeed()
    pid, tid = uuid.uuid4(), uuid.uuid4()
    seen = []

    feed.subscribe_to_project(pid, lambda e: seen.append(("project", e.table)))
    feed.subscribe_to_task(tid, lambda e: seen.append(("task", e.table)))

    delivered = feed.publish("tasks", ChangeType.insert, {"id": tid, "project_id": pid})

    assert delivered == 2
    assert sorted(seen) == [("project", "tasks"), ("task", "tasks")]


def test_unsubscribe():
    feed = ChangeFeed()
    pid = uuid.uuid4()
    seen = []

    def handler(e):
        seen.append(e)

    channel = feed.subscribe_to_project(pid, handler)
    assert feed.active_channels() == [channel]

    feed.unsubscribe(channel, handler)
    assert feed.active_channels() == []
    assert feed.publish("projects", ChangeType.update, {"id": pid}) == 0
    assert seen == []


def test_failing_handler_does_not_stop_others(caplog):
    feed = ChangeFeed()
    pid = uuid.uuid4()
    seen = []

    def broken(_e):
        raise RuntimeError("boom")

    feed.subscribe_to_project(pid, broken)
    feed.subscribe_to_project(pid, seen.append)

    with caplog.at_level("ERROR"):
        delivered = feed.publish("projects", ChangeType.delete, {"id": pid})

    assert delivered == 1
    assert len(seen) == 1
    assert "Realtime handler failed" in caplog.text


def test_event_to_dict_is_json_ready():
    feed = ChangeFeed()
    pid = uuid.uuid4()
    seen = []
    feed.subscribe_to_project(pid, lambda e: seen.append(e.to_dict()))

    feed.publish("projects", ChangeType.update, {"id": pid, "title": "new"}, {"id": pid, "title": "old"})

    event = seen[0]
    assert event["type"] == "UPDATE"
    assert event["table"] == "projects"
    assert event["record"] == {"id": str(pid), "title": "new"}
    assert event["old_record"]["title"] == "old"
    assert isinstance(event["timestamp"], str)


def test_services_publish_after_commit(db):
    project = make_project(db)
    events = []
    change_feed.subscribe_to_project(project.id, events.append)
    change_feed.subscribe_to_activity(events.append)

    task = TaskService(db).create_task(actor_id=project.owner_id, project_id=project.id, title="Live")
    TaskService(db).update_task(project.owner_id, task.id, {"status": "in_progress"})

    tables = [(e.table, e.type) for e in events]
    assert ("tasks", ChangeType.insert) in tables
    assert ("tasks", ChangeType.update) in tables
    # activity inserts reach both the project channel and the activity channel
    assert tables.count(("activity_logs", ChangeType.insert)) == 4

    update = next(e for e in events if e.table == "tasks" and e.type is ChangeType.update)
    assert update.old_record["status"] == "todo"
    assert update.record["status"] == "in_progress"
