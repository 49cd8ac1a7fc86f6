"""
입력 검증 유틸리티 - 일정 / 수강 과목 필드
"""
import re
import time
import uuid

from models import ClassParam, Event
from services.calendar_service import NO_TIME_VALUES, packed_to_minutes, parse_time_string
from utils.error_handlers import ValidationError

TIME_RE = re.compile(r'^([01]?\d|2[0-3]):[0-5]\d$')
COURSE_CODE_RE = re.compile(r'^([A-Z]{2,3})(\d{3})$')
SECTION_RE = re.compile(r'^\d{3}[A-Z]?$')
INSTRUCTOR_RE = re.compile(r'^[^,]+,')

REQUIRED_EVENT_FIELDS = ('title', 'startTime', 'endTime', 'day')
WEEKDAY_MASK = 0b111110  # 월~금 (bit 1~5)
MAX_TITLE_LEN = 100


def generate_event_id():
    """일정 고유 ID 생성"""
    return f"event-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


def _sanitize_text(value, max_len):
    return value.strip()[:max_len] if isinstance(value, str) else ''


def _coerce_time(value):
    """HHMM 정수 또는 "HH:MM" 문자열 → HHMM 정수 (형식 오류면 None)"""
    if isinstance(value, str) and ':' in value:
        return parse_time_string(value) if TIME_RE.match(value.strip()) else None
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if value in NO_TIME_VALUES or packed_to_minutes(value) is not None:
        return value
    return None


def validate_event(data, require_id=False):
    """일정 입력 검증 후 Event 반환 (실패 시 ValidationError)"""
    if not isinstance(data, dict):
        raise ValidationError({"event": "일정 데이터가 없습니다."})

    errors = {}
    for name in REQUIRED_EVENT_FIELDS:
        if data.get(name) is None:
            errors[name] = "필수 항목입니다."

    title = _sanitize_text(data.get('title'), MAX_TITLE_LEN)
    if 'title' not in errors and not title:
        errors['title'] = "제목을 입력해주세요."

    start_time = _coerce_time(data.get('startTime'))
    if 'startTime' not in errors and start_time is None:
        errors['startTime'] = "시작 시간 형식이 올바르지 않습니다."
    end_time = _coerce_time(data.get('endTime'))
    if 'endTime' not in errors and end_time is None:
        errors['endTime'] = "종료 시간 형식이 올바르지 않습니다."

    day = data.get('day')
    if 'day' not in errors:
        if isinstance(day, bool) or not isinstance(day, int) or day & ~WEEKDAY_MASK:
            errors['day'] = "요일 값이 올바르지 않습니다."
        elif day == 0:
            errors['day'] = "요일을 하나 이상 선택해주세요."

    event_id = data.get('id') or ''
    if require_id and not event_id:
        errors['id'] = "수정할 일정 ID가 필요합니다."

    if errors:
        raise ValidationError(errors)

    return Event(
        id=event_id or generate_event_id(),
        title=title,
        start_time=start_time,
        end_time=end_time,
        day=day,
        professor=_sanitize_text(data.get('professor'), 50),
        description=_sanitize_text(data.get('description'), 500),
    )


# ===== 수강 과목 필드 =====
# 각 검증 함수는 (유효 여부, 반영할 필드 dict) 반환, 문자열이 아닌 값은 형식 오류

def _field_text(value):
    if value is None:
        return ''
    return value if isinstance(value, str) else None


def validate_course_code(value):
    """"CSC116" 형식 (영문 2~3자 + 숫자 3자리) → code/name 분리"""
    text = _field_text(value)
    if text is None:
        return False, {}
    cleaned = re.sub(r'\s+', '', text).upper()
    match = COURSE_CODE_RE.match(cleaned)
    if not match:
        return False, {}
    return True, {"code": match.group(1), "name": match.group(2)}


def validate_section(value):
    """숫자 3자리 + 선택적 영문 1자 (빈 값 허용)"""
    text = _field_text(value)
    if text is None:
        return False, {}
    cleaned = re.sub(r'\s+', '', text).upper()
    is_valid = bool(SECTION_RE.match(cleaned)) or not text.strip()
    return is_valid, {"section": cleaned}


def validate_instructor(value):
    """"Last,First" 형식 (빈 값 허용), 쉼표 뒤 공백 제거"""
    text = _field_text(value)
    if text is None:
        return False, {}
    stripped = text.strip()
    is_valid = bool(INSTRUCTOR_RE.match(stripped)) or not stripped
    return is_valid, {"instructor": re.sub(r',\s*', ',', text).strip()}


CLASS_FIELD_VALIDATORS = {
    'code': validate_course_code,
    'section': validate_section,
    'instructor': validate_instructor,
}


def validate_class_param(data, class_id):
    """수강 과목 전체 수정 요청 검증 후 ClassParam 반환"""
    if not isinstance(data, dict):
        raise ValidationError({"class": "수강 과목 데이터가 없습니다."})

    course = data.get('course') or f"{data.get('code') or ''}{data.get('name') or ''}"
    checks = {
        'code': (validate_course_code(course), "과목코드는 CSC116 형식으로 입력해주세요."),
        'section': (validate_section(data.get('section') or ''), "분반은 숫자 3자리(+영문 1자)로 입력해주세요."),
        'instructor': (validate_instructor(data.get('instructor') or ''), "교수명은 'Last,First' 형식으로 입력해주세요."),
    }

    errors = {}
    fields = {"id": class_id}
    for name, ((is_valid, updates), message) in checks.items():
        if not is_valid:
            errors[name] = message
        fields.update(updates)
    if errors:
        raise ValidationError(errors)
    return ClassParam(**fields)
