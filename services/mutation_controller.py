"""
낙관적 변경 처리 - 로컬 상태 선반영 후 원격 명령 실행, 실패 시 복원

모든 생성/수정/삭제는 같은 순서를 따른다.
  1. 현재 컬렉션 스냅샷
  2. 로컬 상태에 변경 반영
  3. 원격 명령 실행
  4. 성공 시 그대로 유지 (생성 결과를 돌려주지 않으면 전체 새로고침),
     실패 시 스냅샷 복원 후 오류 보고
삭제는 2단계 전에 확인 절차를 거치며, 거절하면 아무 변경 없이 종료한다.
같은 대상에 대한 요청이 겹치면 나중에 끝난 쓰기가 남는다.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

COMMITTED = 'committed'
REFRESHED = 'refreshed'
ROLLED_BACK = 'rolled_back'
ABORTED = 'aborted'
SKIPPED = 'skipped'


@dataclass
class MutationResult:
    status: str
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.status in (COMMITTED, REFRESHED)

    def to_dict(self):
        d = {"success": self.ok, "status": self.status}
        if self.error:
            d["error"] = self.error
        return d


class LocalCollection:
    """낙관적 변경 대상이 되는 로컬 목록"""

    def __init__(self, items=None, key='id'):
        self._items = list(items or [])
        self._key = key

    def key_of(self, item):
        if callable(self._key):
            return self._key(item)
        if isinstance(item, dict):
            return item.get(self._key)
        return getattr(item, self._key, None)

    @property
    def items(self):
        return list(self._items)

    def snapshot(self):
        return copy.deepcopy(self._items)

    def restore(self, snapshot):
        self._items = copy.deepcopy(snapshot)

    def replace(self, items):
        self._items = list(items)

    def find(self, item_key):
        for item in self._items:
            if self.key_of(item) == item_key:
                return item
        return None

    def upsert(self, item):
        """같은 키가 있으면 교체, 없으면 추가"""
        item_key = self.key_of(item)
        for i, existing in enumerate(self._items):
            if self.key_of(existing) == item_key:
                self._items[i] = item
                return
        self._items.append(item)

    def remove(self, item_key):
        before = len(self._items)
        self._items = [item for item in self._items if self.key_of(item) != item_key]
        return len(self._items) < before

    def __iter__(self):
        return iter(list(self._items))

    def __len__(self):
        return len(self._items)


class OptimisticMutationController:
    """로컬 선반영 → 원격 명령 → 확정 또는 복원"""

    def __init__(self, report_error=None):
        self._report_error = report_error

    def run(self, collection, apply, command, confirm=None, refresh=None,
            error_message="변경 사항을 저장하지 못했습니다."):
        """
        apply(collection): 로컬 변경 반영
        command(): 원격 명령 (예외 발생 시 실패로 간주)
        confirm(): 삭제 확인 (False 면 중단)
        refresh(): 원격 명령이 결과를 돌려주지 않을 때 전체 새로고침
        """
        if confirm is not None and not confirm():
            logger.info("사용자가 삭제를 취소함")
            return MutationResult(status=ABORTED)

        snapshot = collection.snapshot()
        apply(collection)

        try:
            value = command()
        except Exception as e:
            collection.restore(snapshot)
            logger.error(f"원격 명령 실패, 로컬 상태 복원: {e}", exc_info=True)
            if self._report_error is not None:
                self._report_error(error_message)
            return MutationResult(status=ROLLED_BACK, error=error_message)

        if value is None and refresh is not None:
            refresh()
            return MutationResult(status=REFRESHED)
        return MutationResult(status=COMMITTED, value=value)

    def create(self, collection, item, command, refresh=None,
               error_message="새 항목을 저장하지 못했습니다."):
        """생성 - 원격이 생성된 값을 돌려주면 그 값으로 교체"""
        def _apply(c):
            c.upsert(item)

        result = self.run(collection, _apply, command, refresh=refresh,
                          error_message=error_message)
        if result.status == COMMITTED and result.value is not None:
            collection.upsert(result.value)
        return result

    def update(self, collection, item, command,
               error_message="변경 사항을 저장하지 못했습니다."):
        def _apply(c):
            c.upsert(item)

        return self.run(collection, _apply, command, error_message=error_message)

    def delete(self, collection, item_key, command, confirm,
               error_message="삭제하지 못했습니다."):
        """삭제 - 확인 절차 필수"""
        if confirm is None:
            raise ValueError("삭제에는 확인 절차가 필요합니다.")

        def _apply(c):
            c.remove(item_key)

        return self.run(collection, _apply, command, confirm=confirm,
                        error_message=error_message)
