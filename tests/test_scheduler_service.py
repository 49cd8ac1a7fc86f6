import pytest

from models import ClassParam
from services.mutation_controller import ABORTED, REFRESHED, ROLLED_BACK, SKIPPED
from services.schedule_identity import canonical_key
from services.scheduler_service import LOAD_ERROR, REFRESH_ERROR, SchedulerService

from conftest import FakeBackend

NEW_EVENT = {"title": "Lab", "startTime": 1300, "endTime": 1400, "day": 4}


def test_load_page_populates_state(service, schedule_a):
    assert [e.id for e in service.user_events] == ["e1"]
    assert service.schedules.items[0] == schedule_a
    assert [c.id for c in service.classes] == ["c1"]
    assert service.selected_schedule_index is None
    assert service.loaded and not service.loading
    assert service.scheduler_error is None


def test_load_page_failure_resets_to_defaults(backend):
    backend.fail_on.add('get_classes')
    svc = SchedulerService(backend)
    svc.load_page()

    assert svc.scheduler_error == LOAD_ERROR
    assert svc.schedules.items == [[]]
    assert len(svc.user_events) == 0


def test_empty_schedule_list_keeps_placeholder():
    svc = SchedulerService(FakeBackend())
    svc.load_page()
    assert svc.schedules.items == [[]]


def test_refresh_with_bad_shape_resets(service, backend):
    backend.events = "not a list"
    assert service.refresh() is False
    assert service.scheduler_error == REFRESH_ERROR
    assert service.schedules.items == [[]]
    assert len(service.user_events) == 0


def test_refresh_failure_keeps_state(service, backend):
    backend.fail_on.add('get_events')
    assert service.refresh() is False
    assert [e.id for e in service.user_events] == ["e1"]
    assert service.scheduler_error == REFRESH_ERROR


def test_create_event_refreshes_from_storage(service, backend):
    result = service.create_event(NEW_EVENT)
    assert result.status == REFRESHED
    assert [e["title"] for e in backend.events] == ["Gym", "Lab"]
    assert [e.title for e in service.user_events] == ["Gym", "Lab"]


def test_create_event_failure_rolls_back(service, backend):
    backend.fail_on.add('create_event')
    result = service.create_event(NEW_EVENT)

    assert result.status == ROLLED_BACK
    assert [e.id for e in service.user_events] == ["e1"]
    assert service.scheduler_error == result.error


def test_update_unknown_event(service):
    with pytest.raises(LookupError):
        service.update_event({**NEW_EVENT, "id": "nope"})


def test_update_event_failure_restores_previous(service, backend):
    backend.fail_on.add('update_event')
    service.update_event({**NEW_EVENT, "id": "e1"})
    assert service.user_events.find("e1").title == "Gym"


def test_declined_event_delete_keeps_everything(service, backend):
    result = service.delete_event("e1", confirm=lambda: False)
    assert result.status == ABORTED
    assert ('delete_event', ("e1",)) not in backend.calls
    assert len(service.user_events) == 1


def test_generate_schedules_resets_numbers(service, backend, schedule_a, schedule_c):
    service.toggle_param_checkbox('box1')
    backend.generated = [schedule_c, schedule_a]
    assert service.generate_schedules() is True

    name, (parameters,) = backend.calls[-1]
    assert name == 'generate_schedules'
    assert parameters["params_checkbox"] == [True, False, False]
    assert parameters["events"] == [{"time": [700, 800], "days": [True, False, False, False, False]}]
    assert parameters["classes"][0]["code"] == "CSC"

    assert service.registry.number_of(canonical_key(schedule_c)) == 1
    assert service.registry.number_of(canonical_key(schedule_a)) == 2
    assert service.scrape_state.status == "시간표 생성 완료!"


def test_generate_error_string(service, backend):
    backend.generated = "No valid schedules"
    assert service.generate_schedules() is False
    assert service.schedules.items == [[]]
    assert "No valid schedules" in service.scrape_state.status
    assert not service.scrape_state.is_scraping


def test_toggle_favorite_adds_and_removes(service, backend, schedule_a):
    assert service.toggle_favorite(schedule_a).ok
    assert service.favorite_index.is_favorite(schedule_a)
    assert backend.favorites == [schedule_a]

    assert service.toggle_favorite(schedule_a).ok
    assert not service.favorite_index.is_favorite(schedule_a)
    assert backend.favorites == []


def test_toggle_favorite_failure_rolls_back(service, backend, schedule_a):
    backend.fail_on.add('change_favorite')
    result = service.toggle_favorite(schedule_a)

    assert result.status == ROLLED_BACK
    assert len(service.favorites) == 0
    assert not service.favorite_index.is_favorite(schedule_a)


def test_toggle_favorite_unserializable_skipped(service):
    assert service.toggle_favorite([{1, 2}]).status == SKIPPED


def test_delete_schedule_forgets_only_its_number(service, backend, schedule_a, schedule_b):
    key_a, key_b = canonical_key(schedule_a), canonical_key(schedule_b)
    service.set_selected_schedule(1)

    result = service.delete_schedule(key_a, confirm=lambda: True)

    assert result.ok
    assert service.registry.number_of(key_a) == "?"
    assert service.registry.number_of(key_b) == 2
    assert service.schedules.items == [schedule_b]
    assert service.selected_schedule_index == 0
    assert backend.display_schedule == 0


def test_delete_pinned_schedule_unpins(service, backend, schedule_a):
    service.set_selected_schedule(0)
    service.delete_schedule(canonical_key(schedule_a), confirm=lambda: True)
    assert service.selected_schedule_index is None
    assert backend.display_schedule is None


def test_delete_schedule_failure_restores(service, backend, schedule_a, schedule_b):
    backend.fail_on.add('delete_schedule')
    result = service.delete_schedule(canonical_key(schedule_a), confirm=lambda: True)
    assert result.status == ROLLED_BACK
    assert service.schedules.items == [schedule_a, schedule_b]
    assert service.registry.number_of(canonical_key(schedule_a)) == 1


def test_select_schedule_toggles(service, backend):
    assert service.set_selected_schedule(1)
    assert service.selected_schedule_index == 1
    assert service.set_selected_schedule(1)
    assert service.selected_schedule_index is None
    assert backend.display_schedule is None

    with pytest.raises(ValueError):
        service.set_selected_schedule(5)


def test_select_schedule_failure_keeps_previous(service, backend):
    backend.fail_on.add('set_display_schedule')
    assert service.set_selected_schedule(0) is False
    assert service.selected_schedule_index is None


def test_calendar_merges_hovered_preview(service, schedule_a):
    service.set_hovered_schedule(schedule_a)
    calendar = service.calendar()

    monday_ids = [e.id for e in calendar.events_by_day["1"]]
    assert monday_ids == ["e1", "preview-CSC116-001"]
    assert [e.id for e in calendar.events_by_day["3"]] == ["preview-CSC116-001"]


def test_pinned_schedule_shown_when_not_hovering(service, schedule_b):
    service.set_selected_schedule(1)
    assert service.display_schedule() == schedule_b
    service.set_hovered_schedule(None)
    assert "2" in service.calendar().events_by_day


def test_schedule_listing(service, schedule_a):
    service.toggle_favorite(schedule_a)
    listing = service.schedule_listing()

    assert [(row["index"], row["number"], row["is_favorite"]) for row in listing] == [
        (0, 1, True), (1, 2, False),
    ]
    service.toggle_render_favorites()
    assert [row["key"] for row in service.schedule_listing()] == [canonical_key(schedule_a)]


def test_toggle_unknown_param(service):
    with pytest.raises(ValueError):
        service.toggle_param_checkbox('box9')


def test_class_field_blur_saves(service, backend):
    service.edit_class_field("c1", "section", "002")
    result = service.blur_class("c1")

    assert result.ok
    assert backend.classes[0]["section"] == "002"
    assert service.classes.find("c1").section == "002"


def test_class_field_blur_rollback(service, backend):
    backend.fail_on.add('update_class')
    service.edit_class_field("c1", "code", "MA141")
    result = service.blur_class("c1")

    assert result.status == ROLLED_BACK
    assert service.classes.find("c1").code == "CSC"
    assert service.class_editor("c1").form.code == "CSC"


def test_new_class_can_be_deleted_before_save(service):
    class_param = service.add_class()
    assert service.classes.find(class_param.id) is not None

    result = service.delete_class(class_param.id, confirm=lambda: True)
    assert result.ok
    assert service.classes.find(class_param.id) is None


def test_import_classes(service, backend):
    results = service.import_classes([{"id": "", "code": "MA", "name": "141", "section": "", "instructor": ""}])
    assert all(r.ok for r in results)
    assert {c["code"] for c in backend.classes} == {"CSC", "MA"}


def test_update_class_requires_record(service):
    with pytest.raises(ValueError):
        service.update_class(None)
    assert isinstance(service.classes.find("c1"), ClassParam)


@pytest.mark.parametrize("table, bad", [("schedules", "backend exploded"), ("favorites", {"oops": 1})])
def test_refresh_rejects_wrong_schedule_shapes(service, backend, monkeypatch, table, bad):
    original = backend.get_schedules
    monkeypatch.setattr(backend, 'get_schedules', lambda t='schedules': bad if t == table else original(t))

    assert service.refresh() is False
    assert service.scheduler_error == REFRESH_ERROR
    assert service.schedules.items == [[]]
    assert len(service.favorites) == 0
    assert len(service.user_events) == 0


def test_favorite_reload_rejects_wrong_shape(service, backend, monkeypatch, schedule_a):
    original = backend.get_schedules
    monkeypatch.setattr(backend, 'get_schedules', lambda t='schedules': "oops" if t == 'favorites' else original(t))

    service.toggle_favorite(schedule_a)
    assert service.scheduler_error == REFRESH_ERROR
    assert len(service.favorites) == 0
    assert not service.favorite_index.is_favorite(schedule_a)


def test_full_class_update_resyncs_open_editor(service, backend):
    service.edit_class_field("c1", "section", "002")
    result = service.update_class(ClassParam(id="c1", code="MA", name="141", section="003"))
    assert result.ok

    editor = service.class_editor("c1")
    assert editor.form.code == "MA"
    assert editor.modified == set()
    assert service.blur_class("c1") is None
    assert backend.classes[0]["code"] == "MA"
    assert backend.classes[0]["section"] == "003"
