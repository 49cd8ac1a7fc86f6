"""
후보 시간표 식별 서비스 - 내용 기반 키, 표시 번호, 즐겨찾기 색인

후보 시간표에는 고유 id 가 없으므로 전체 값을 정규화한 JSON 문자열을
식별자로 사용한다. 같은 문자열이면 서로 다른 생성 요청에서 왔어도 같은
시간표로 취급한다.
"""
import json
import logging

logger = logging.getLogger(__name__)

UNKNOWN_NUMBER = "?"


def canonical_key(schedule):
    """시간표 값 → 정규화 키 (직렬화 불가면 None)"""
    try:
        return json.dumps(
            schedule,
            sort_keys=True,
            separators=(',', ':'),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"시간표 직렬화 실패, 식별 대상에서 제외: {e}")
        return None


class ScheduleRegistry:
    """정규화 키 → 표시 번호 (처음 본 순서대로, 한번 부여하면 변하지 않음)"""

    def __init__(self):
        self._numbers = {}
        self._next_number = 1

    @property
    def next_number(self):
        return self._next_number

    def assign_numbers(self, schedules):
        """처음 보는 시간표에만 다음 번호 부여 (기존 번호 유지)"""
        for schedule in schedules:
            key = canonical_key(schedule)
            if key is None or key in self._numbers:
                continue
            self._numbers[key] = self._next_number
            self._next_number += 1

    def number_of(self, key):
        return self._numbers.get(key, UNKNOWN_NUMBER)

    def forget(self, key):
        """삭제된 시간표의 번호 제거 (다른 번호와 카운터는 그대로)"""
        self._numbers.pop(key, None)

    def reset(self):
        """새 생성 실행 시에만 호출 - 번호 매핑 초기화"""
        self._numbers.clear()
        self._next_number = 1
        logger.info("시간표 표시 번호 초기화")

    def __contains__(self, key):
        return key in self._numbers

    def __len__(self):
        return len(self._numbers)


class FavoriteIndex:
    """저장된 즐겨찾기 목록의 키 집합 (조회용, 원본은 즐겨찾기 목록)"""

    def __init__(self, favorites=()):
        self._keys = frozenset()
        self.rebuild(favorites)

    def rebuild(self, favorites):
        keys = (canonical_key(schedule) for schedule in favorites)
        self._keys = frozenset(key for key in keys if key is not None)

    def is_favorite(self, schedule):
        key = canonical_key(schedule)
        return key is not None and key in self._keys

    def __contains__(self, key):
        return key in self._keys

    def __len__(self):
        return len(self._keys)
