"""
필드 단위 편집 - 입력 중에는 수정 필드만 기록하고, 포커스를 잃을 때
모든 필드가 유효하면 저장, 하나라도 유효하지 않으면 마지막 정상값으로 복원
"""
import copy
import logging

from models import ClassParam
from utils.error_handlers import ValidationError
from utils.validators import CLASS_FIELD_VALIDATORS

logger = logging.getLogger(__name__)


class FieldEditor:
    """레코드 하나에 대한 검증 기반 필드 편집 상태"""

    def __init__(self, record, validators, on_commit):
        self._validators = validators
        self._on_commit = on_commit
        self._reset(record)

    def _reset(self, record):
        self.original = copy.deepcopy(record)
        self.form = copy.deepcopy(record)
        self.displayed = {}
        self.validation = {name: True for name in self._validators}
        self.modified = set()

    @property
    def is_valid(self):
        return all(self.validation.values())

    def change(self, field, value):
        """입력값 반영 (저장하지 않음), 해당 필드 유효 여부 반환"""
        validator = self._validators.get(field) if isinstance(field, str) else None
        if validator is None:
            # 검증 함수가 있는 필드만 편집 가능 (id, 메서드 등 차단)
            raise ValidationError({"field": f"수정할 수 없는 필드: {field}"})
        self.modified.add(field)
        self.displayed[field] = value

        is_valid, updates = validator(value)
        self.validation[field] = is_valid
        for name, new_value in updates.items():
            setattr(self.form, name, new_value)
        return is_valid

    def blur(self):
        """포커스 이탈 시점 - 유효하면 저장 콜백 호출, 아니면 복원

        저장 콜백의 결과를 돌려주며, 수정 사항이 없거나 복원한 경우 None.
        """
        if not self.modified:
            return None

        if not self.is_valid:
            invalid = sorted(name for name, ok in self.validation.items() if not ok)
            logger.warning(f"검증 실패로 저장 취소, 이전 값 복원: {invalid}")
            self._reset(self.original)
            return None

        record = copy.deepcopy(self.form)
        self.modified = set()
        self.displayed = {}
        result = self._on_commit(record)
        if getattr(result, 'ok', True):
            self.original = copy.deepcopy(record)
        else:
            self._reset(self.original)
        return result

    def to_dict(self):
        return {
            "form": self.form.to_dict(),
            "displayed": dict(self.displayed),
            "validation": dict(self.validation),
            "modified": sorted(self.modified),
            "is_valid": self.is_valid,
        }

    def sync(self, record):
        """외부에서 레코드가 바뀌었을 때 (새로고침, 롤백) 편집 상태 초기화"""
        self._reset(record)


def class_card_editor(class_param: ClassParam, on_commit):
    """수강 과목 카드용 편집기 (과목코드, 분반, 교수명 검증)"""
    return FieldEditor(class_param, CLASS_FIELD_VALIDATORS, on_commit)
