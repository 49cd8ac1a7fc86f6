import copy

import pytest

from services.cosmos_service import LocalJsonStorage
from services.schedule_identity import canonical_key
from services.scheduler_service import SchedulerService


class BackendFailure(RuntimeError):
    pass


class FakeBackend:
    """메모리 저장소 - fail_on 에 넣은 메서드는 예외 발생"""

    def __init__(self, events=None, schedules=None, favorites=None, classes=None,
                 display_schedule=None, generated=None):
        self.events = copy.deepcopy(events or [])
        self.schedules = copy.deepcopy(schedules or [])
        self.favorites = copy.deepcopy(favorites or [])
        self.classes = copy.deepcopy(classes or [])
        self.display_schedule = display_schedule
        self.generated = generated
        self.fail_on = set()
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail_on:
            raise BackendFailure(f"{name} failed")

    def get_events(self):
        self._call('get_events')
        return copy.deepcopy(self.events)

    def create_event(self, event):
        self._call('create_event', event)
        self.events.append(event)

    def update_event(self, event):
        self._call('update_event', event)
        self.events = [event if e['id'] == event['id'] else e for e in self.events]

    def delete_event(self, event_id):
        self._call('delete_event', event_id)
        self.events = [e for e in self.events if e['id'] != event_id]

    def get_schedules(self, table='schedules'):
        self._call('get_schedules', table)
        source = self.favorites if table == 'favorites' else self.schedules
        return copy.deepcopy(source)

    def save_schedules(self, schedules):
        self.schedules = copy.deepcopy(schedules)

    def delete_schedule(self, key, is_favorited):
        self._call('delete_schedule', key, is_favorited)
        self.schedules = [s for s in self.schedules if canonical_key(s) != key]
        if is_favorited:
            self.favorites = [s for s in self.favorites if canonical_key(s) != key]

    def change_favorite(self, key, is_favorited, schedule=None):
        self._call('change_favorite', key, is_favorited)
        self.favorites = [s for s in self.favorites if canonical_key(s) != key]
        if not is_favorited:
            self.favorites.append(schedule)

    def get_classes(self):
        self._call('get_classes')
        return copy.deepcopy(self.classes)

    def update_class(self, class_param):
        self._call('update_class', class_param)
        self.classes = [c for c in self.classes if c['id'] != class_param['id']] + [class_param]

    def remove_class(self, class_id):
        self._call('remove_class', class_id)
        self.classes = [c for c in self.classes if c['id'] != class_id]

    def get_display_schedule(self):
        self._call('get_display_schedule')
        return self.display_schedule

    def set_display_schedule(self, index):
        self._call('set_display_schedule', index)
        self.display_schedule = index

    def generate_schedules(self, parameters):
        self._call('generate_schedules', parameters)
        if isinstance(self.generated, list):
            self.schedules = copy.deepcopy(self.generated)
        return copy.deepcopy(self.generated)


def make_schedule(code, name, section, start=900, end=950, days=(0, 2)):
    """후보 시간표 하나 (과목 1개, 강의 1개)"""
    day_slots = [[[start, end], i in days] for i in range(5)]
    return [{
        "code": code,
        "name": name,
        "classes": [{"section": section, "instructor": "Kim,Lee", "days": day_slots}],
    }]


@pytest.fixture
def schedule_a():
    return make_schedule("CSC", "116", "001")


@pytest.fixture
def schedule_b():
    return make_schedule("MA", "141", "002", start=1030, end=1120, days=(1, 3))


@pytest.fixture
def schedule_c():
    return make_schedule("PY", "205", "003", start=1400, end=1515, days=(4,))


@pytest.fixture
def backend(schedule_a, schedule_b):
    return FakeBackend(
        events=[{"id": "e1", "title": "Gym", "startTime": 700, "endTime": 800, "day": 2}],
        schedules=[schedule_a, schedule_b],
        classes=[{"id": "c1", "code": "CSC", "name": "116", "section": "001", "instructor": ""}],
    )


@pytest.fixture
def service(backend):
    svc = SchedulerService(backend, start_hour=8, end_hour=16)
    svc.load_page()
    return svc


@pytest.fixture
def local_storage(tmp_path):
    return LocalJsonStorage(filepath=str(tmp_path / 'scheduler.json'))


@pytest.fixture
def client(tmp_path, monkeypatch):
    from config import Config
    from app import create_app

    monkeypatch.setattr(Config, 'UPLOAD_FOLDER', str(tmp_path / 'uploads'))
    storage = LocalJsonStorage(filepath=str(tmp_path / 'api.json'))
    flask_app = create_app(storage=storage)
    flask_app.config['TESTING'] = True
    with flask_app.test_client() as test_client:
        yield test_client
