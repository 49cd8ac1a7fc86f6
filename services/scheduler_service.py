"""
시간표 화면 상태 서비스

사용자 일정, 후보 시간표, 즐겨찾기, 수강 과목 조건과 표시 번호를 한 곳에서
관리한다. 모든 변경은 OptimisticMutationController 를 거치며 세션 상태의
쓰기는 한 번에 하나만 진행된다 (HTTP 계층이 self.lock 을 잡고 호출).
"""
import logging
import threading
import time
import uuid

from config import Config
from models import ClassParam, Event, ScrapeState
from services.calendar_service import format_busy_times, process_events, schedule_to_preview_events
from services.field_editor import class_card_editor
from services.mutation_controller import (
    SKIPPED, LocalCollection, MutationResult, OptimisticMutationController,
)
from services.schedule_identity import FavoriteIndex, ScheduleRegistry, canonical_key
from utils.error_handlers import ValidationError
from utils.validators import validate_event

logger = logging.getLogger(__name__)

REFRESH_ERROR = "일부 시간표 데이터를 새로고침하지 못했습니다."
LOAD_ERROR = "시간표 데이터를 불러오지 못했습니다. 잠시 후 다시 시도해주세요."


class UnexpectedShapeError(TypeError):
    """저장소가 예상과 다른 형식의 값을 반환함"""


def _expect_list(value, label):
    if not isinstance(value, list):
        raise UnexpectedShapeError(f"{label} 형식 오류: {type(value).__name__}")
    return value


def _expect_records(value, label):
    records = _expect_list(value, label)
    if not all(isinstance(r, dict) for r in records):
        raise UnexpectedShapeError(f"{label} 항목 형식 오류")
    return records


class SchedulerService:
    """시간표 화면 한 세션의 상태와 변경 작업"""

    def __init__(self, storage, start_hour=Config.CALENDAR_START_HOUR, end_hour=Config.CALENDAR_END_HOUR):
        self.storage = storage
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.lock = threading.RLock()

        self.registry = ScheduleRegistry()
        self.favorite_index = FavoriteIndex()
        self.controller = OptimisticMutationController(report_error=self._set_error)

        self.user_events = LocalCollection(key='id')
        self.schedules = LocalCollection([[]], key=canonical_key)
        self.favorites = LocalCollection(key=canonical_key)
        self.classes = LocalCollection(key='id')

        self.selected_schedule_index = None
        self.hovered_schedule = None
        self.scheduler_error = None
        self.scrape_state = ScrapeState()
        self.param_checkboxes = {"box1": False, "box2": False}
        self.render_favorites = False
        self.loading = False
        self.loaded = False
        self._editors = {}

    def _set_error(self, message):
        self.scheduler_error = message

    def _set_favorites(self, favorites):
        self.favorites.replace(favorites)
        self.favorite_index.rebuild(favorites)

    def _reset_to_defaults(self):
        self.user_events.replace([])
        self.schedules.replace([[]])
        self._set_favorites([])
        self.classes.replace([])
        self._editors.clear()

    # ===== 불러오기 / 새로고침 =====

    def refresh(self, called_from_generate=False):
        """일정, 후보 시간표, 즐겨찾기를 저장소에서 다시 읽기"""
        try:
            events = _expect_records(self.storage.get_events(), "일정 목록")
            schedules = _expect_list(self.storage.get_schedules('schedules'), "후보 시간표 목록")
            favorites = _expect_list(self.storage.get_schedules('favorites'), "즐겨찾기 목록")
        except UnexpectedShapeError as e:
            logger.error(f"새로고침 응답 형식 오류: {e}")
            self.scheduler_error = self.scheduler_error or REFRESH_ERROR
            self._reset_to_defaults()
            return False
        except Exception as e:
            logger.error(f"새로고침 실패: {e}", exc_info=True)
            self.scheduler_error = self.scheduler_error or REFRESH_ERROR
            return False

        final_schedules = schedules or [[]]
        self.registry.assign_numbers(final_schedules)

        self.user_events.replace([Event.from_dict(e) for e in events])
        self.schedules.replace(final_schedules)
        self._set_favorites(favorites)
        if not called_from_generate:
            self.scheduler_error = None
        return True

    def load_page(self):
        """화면 최초 진입 - 전체 데이터와 고정 시간표, 수강 과목 조건 로드"""
        self.loading = True
        self.scheduler_error = None
        try:
            self.refresh()
            selected = self.storage.get_display_schedule()
            classes = _expect_records(self.storage.get_classes(), "수강 과목 목록")

            if isinstance(selected, bool) or not isinstance(selected, int):
                selected = None
            self.selected_schedule_index = selected
            self.classes.replace([ClassParam.from_dict(c) for c in classes])
            self._editors.clear()
        except Exception as e:
            logger.error(f"시간표 화면 데이터 로드 실패: {e}", exc_info=True)
            self.scheduler_error = LOAD_ERROR
            self._reset_to_defaults()
        finally:
            self.loading = False
            self.loaded = True

    def _reload_favorites(self):
        try:
            favorites = _expect_list(self.storage.get_schedules('favorites'), "즐겨찾기 목록")
        except UnexpectedShapeError as e:
            logger.error(f"즐겨찾기 응답 형식 오류: {e}")
            self.scheduler_error = REFRESH_ERROR
            self._set_favorites([])
            return
        except Exception as e:
            logger.error(f"즐겨찾기 새로고침 실패: {e}", exc_info=True)
            self.scheduler_error = REFRESH_ERROR
            return
        self._set_favorites(favorites)

    # ===== 사용자 일정 =====

    def create_event(self, data):
        """일정 생성 - 저장소가 생성 결과를 돌려주지 않으므로 성공 후 전체 새로고침"""
        self.scheduler_error = None
        event = validate_event(data)

        def _command():
            created = self.storage.create_event(event.to_dict())
            return Event.from_dict(created) if isinstance(created, dict) else None

        return self.controller.create(
            self.user_events, event, _command, refresh=self.refresh,
            error_message="일정을 저장하지 못했습니다. 다시 시도해주세요.",
        )

    def update_event(self, data):
        self.scheduler_error = None
        event = validate_event(data, require_id=True)
        if self.user_events.find(event.id) is None:
            raise LookupError(f"일정을 찾을 수 없음: {event.id}")

        return self.controller.update(
            self.user_events, event, lambda: self.storage.update_event(event.to_dict()),
            error_message="일정을 수정하지 못했습니다. 다시 시도해주세요.",
        )

    def delete_event(self, event_id, confirm):
        self.scheduler_error = None
        if not event_id:
            raise ValidationError({"id": "삭제할 일정 ID가 필요합니다."})

        return self.controller.delete(
            self.user_events, event_id, lambda: self.storage.delete_event(event_id),
            confirm=confirm,
            error_message="일정을 삭제하지 못했습니다. 다시 시도해주세요.",
        )

    # ===== 후보 시간표 =====

    def generate_schedules(self):
        """외부 생성기로 새 후보 시간표 생성 - 성공 시 표시 번호 초기화"""
        self.scrape_state = ScrapeState(is_scraping=True, status="시간표 생성 시작...")
        self.scheduler_error = None
        parameters = {
            "params_checkbox": [self.param_checkboxes['box1'], self.param_checkboxes['box2'], False],
            "classes": [c.to_dict() for c in self.classes],
            "events": format_busy_times(self.user_events),
        }

        try:
            result = self.storage.generate_schedules(parameters)
        except Exception as e:
            logger.error(f"시간표 생성 중 오류: {e}", exc_info=True)
            self.scrape_state = ScrapeState(status=f"오류: {e}")
            self.schedules.replace([[]])
            return False

        if isinstance(result, str):
            logger.warning(f"시간표 생성 실패: {result}")
            self.scrape_state = ScrapeState(status=f"오류: {result}")
            self.schedules.replace([[]])
            return False
        if not isinstance(result, list):
            logger.error(f"시간표 생성 응답 형식 오류: {type(result).__name__}")
            self.scrape_state = ScrapeState(status="오류: 시간표 생성 결과 형식이 올바르지 않습니다.")
            self.schedules.replace([[]])
            return False

        schedules = result or [[]]
        self.registry.reset()
        self.registry.assign_numbers(schedules)
        self.schedules.replace(schedules)
        self.scrape_state = ScrapeState(status="시간표 생성 완료!")
        return True

    def clear_scrape_status(self):
        self.scrape_state = ScrapeState()
        self.scheduler_error = None

    def toggle_favorite(self, schedule):
        """즐겨찾기 추가/해제 - 성공 후 즐겨찾기 목록만 다시 읽기"""
        self.scheduler_error = None
        if self.render_favorites:
            self.hovered_schedule = None

        key = canonical_key(schedule)
        if key is None:
            return MutationResult(status=SKIPPED, error="이 시간표는 즐겨찾기할 수 없습니다.")
        is_favorite = key in self.favorite_index

        def _apply(favorites):
            if is_favorite:
                favorites.remove(key)
            else:
                favorites.upsert(schedule)

        result = self.controller.run(
            self.favorites, _apply,
            lambda: self.storage.change_favorite(key, is_favorite, None if is_favorite else schedule),
            refresh=self._reload_favorites,
            error_message="즐겨찾기 상태를 변경하지 못했습니다.",
        )
        self.favorite_index.rebuild(self.favorites)
        return result

    def find_schedule(self, key):
        """키로 후보 시간표 또는 즐겨찾기 검색"""
        schedule = self.schedules.find(key)
        if schedule is None:
            schedule = self.favorites.find(key)
        return schedule

    def _selected_key(self):
        index = self.selected_schedule_index
        schedules = self.schedules.items
        if index is None or not 0 <= index < len(schedules):
            return None
        return canonical_key(schedules[index])

    def delete_schedule(self, key, confirm):
        """후보 시간표 삭제 - 해당 표시 번호만 제거, 고정 선택 위치 재계산"""
        self.hovered_schedule = None
        self.scheduler_error = None
        if not key:
            raise ValidationError({"key": "삭제할 시간표 키가 필요합니다."})

        is_favorite = key in self.favorite_index
        pinned_key = self._selected_key()

        result = self.controller.delete(
            self.schedules, key, lambda: self.storage.delete_schedule(key, is_favorite),
            confirm=confirm,
            error_message="시간표를 삭제하지 못했습니다.",
        )
        if not result.ok:
            return result

        self.registry.forget(key)
        if not len(self.schedules):
            self.schedules.replace([[]])
        self.refresh()
        self._repin(pinned_key)
        return result

    def _repin(self, pinned_key):
        if self.selected_schedule_index is None:
            return
        keys = [canonical_key(s) for s in self.schedules]
        new_index = keys.index(pinned_key) if pinned_key is not None and pinned_key in keys else None
        if new_index == self.selected_schedule_index:
            return
        self.selected_schedule_index = new_index
        try:
            self.storage.set_display_schedule(new_index)
        except Exception as e:
            logger.error(f"고정 시간표 갱신 실패: {e}", exc_info=True)
            self.scheduler_error = "고정 시간표를 갱신하지 못했습니다."

    def set_selected_schedule(self, index):
        """시간표 고정 (같은 시간표를 다시 선택하면 해제)"""
        self.scheduler_error = None
        if index is not None and (isinstance(index, bool) or not isinstance(index, int)
                                  or not 0 <= index < len(self.schedules)):
            raise ValueError("시간표 번호가 올바르지 않습니다.")

        new_index = None if self.selected_schedule_index == index else index
        try:
            self.storage.set_display_schedule(new_index)
        except Exception as e:
            logger.error(f"고정 시간표 저장 실패: {e}", exc_info=True)
            self.scheduler_error = "시간표를 고정하지 못했습니다."
            return False
        self.selected_schedule_index = new_index
        self.hovered_schedule = None
        return True

    def set_hovered_schedule(self, schedule):
        self.hovered_schedule = schedule

    def toggle_render_favorites(self):
        self.render_favorites = not self.render_favorites
        self.hovered_schedule = None

    def toggle_param_checkbox(self, name):
        if name not in self.param_checkboxes:
            raise ValueError(f"알 수 없는 옵션: {name}")
        self.param_checkboxes[name] = not self.param_checkboxes[name]

    # ===== 수강 과목 조건 =====

    def add_class(self):
        """빈 수강 과목 추가 (첫 저장 전까지 로컬에만 존재)"""
        class_param = ClassParam(id=f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}")
        self.classes.upsert(class_param)
        return class_param

    def update_class(self, class_param):
        self.scheduler_error = None
        if class_param is None:
            raise ValidationError({"class": "수강 과목 데이터가 없습니다."})

        result = self.controller.update(
            self.classes, class_param, lambda: self.storage.update_class(class_param.to_dict()),
            error_message="수강 과목을 저장하지 못했습니다.",
        )
        # 저장 성공이면 새 값, 실패면 복원된 값으로 편집 상태 맞춤
        editor = self._editors.get(class_param.id)
        current = self.classes.find(class_param.id)
        if editor is not None and current is not None:
            editor.sync(current)
        return result

    def delete_class(self, class_id, confirm):
        self.scheduler_error = None
        if not class_id:
            raise ValidationError({"id": "삭제할 수강 과목 ID가 필요합니다."})

        result = self.controller.delete(
            self.classes, class_id, lambda: self.storage.remove_class(class_id),
            confirm=confirm,
            error_message="수강 과목을 삭제하지 못했습니다.",
        )
        if result.ok:
            self._editors.pop(class_id, None)
        return result

    def import_classes(self, records):
        """엑셀에서 읽은 수강 과목 조건 일괄 저장"""
        results = []
        for record in records:
            class_param = ClassParam.from_dict(record)
            if not class_param.id:
                class_param.id = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"
            results.append(self.update_class(class_param))
        return results

    def class_editor(self, class_id):
        class_param = self.classes.find(class_id)
        if class_param is None:
            raise LookupError(f"수강 과목을 찾을 수 없음: {class_id}")
        editor = self._editors.get(class_id)
        if editor is None:
            editor = class_card_editor(class_param, self.update_class)
            self._editors[class_id] = editor
        return editor

    def edit_class_field(self, class_id, field, value):
        """입력 중 - 검증 상태만 갱신하고 저장하지 않음"""
        editor = self.class_editor(class_id)
        editor.change(field, value)
        return editor

    def blur_class(self, class_id):
        """포커스 이탈 - 모두 유효하면 저장, 아니면 이전 값 복원"""
        return self.class_editor(class_id).blur()

    # ===== 렌더링 =====

    def display_schedule(self):
        """미리보기 대상 시간표 (마우스 오버 우선, 없으면 고정 시간표)"""
        if self.hovered_schedule is not None:
            return self.hovered_schedule
        schedules = self.schedules.items
        index = self.selected_schedule_index
        if index is not None and 0 <= index < len(schedules):
            return schedules[index]
        return None

    def calendar(self):
        events = self.user_events.items
        schedule = self.display_schedule()
        if schedule:
            events += schedule_to_preview_events(schedule)
        return process_events(events, self.start_hour, self.end_hour)

    def schedule_listing(self):
        """목록 표시용 - 키, 표시 번호, 즐겨찾기 여부 (직렬화 불가 시간표 제외)"""
        source = self.favorites.items if self.render_favorites else self.schedules.items
        listing = []
        for index, schedule in enumerate(source):
            key = canonical_key(schedule)
            if key is None:
                continue
            listing.append({
                "index": index,
                "key": key,
                "number": self.registry.number_of(key),
                "is_favorite": key in self.favorite_index,
                "is_selected": not self.render_favorites and index == self.selected_schedule_index,
                "schedule": schedule,
            })
        return listing

    def status(self):
        return {
            "loading": self.loading,
            "error": self.scheduler_error,
            "scrape": self.scrape_state.to_dict(),
            "params": dict(self.param_checkboxes),
            "render_favorites": self.render_favorites,
            "selected_index": self.selected_schedule_index,
        }
