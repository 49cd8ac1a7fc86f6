"""
주간 캘린더 렌더링 서비스 - 요일 비트마스크 해석 및 겹침 일정 배치
"""
import logging
from dataclasses import fields

from config import Config
from models import Event, PositionedEvent, ProcessedEvents

logger = logging.getLogger(__name__)

# 시간 미지정 일정 표시값 (두 값 모두 동일하게 취급)
NO_TIME_VALUES = (0, -1)

# 요일 비트 (bit 0 미사용, 월=bit 1 ... 금=bit 5)
WEEKDAY_BITS = range(1, 6)


def _as_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def packed_to_minutes(value):
    """HHMM 정수 → 자정 이후 분 (형식 오류면 None)"""
    packed = _as_int(value)
    if packed is None or not 0 <= packed <= 2359:
        return None
    hours, minutes = divmod(packed, 100)
    if minutes >= 60:
        return None
    return hours * 60 + minutes


def format_time(value):
    """HHMM 정수 → "HH:MM" 문자열"""
    minutes = packed_to_minutes(value)
    if minutes is None:
        return "00:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_time_string(time_str):
    """"HH:MM" 문자열 → HHMM 정수 (잘못된 형식은 0)"""
    if not isinstance(time_str, str) or ':' not in time_str:
        return 0
    hours, _, minutes = time_str.strip().partition(':')
    try:
        h, m = int(hours), int(minutes)
    except ValueError:
        return 0
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return 0
    return h * 100 + m


def is_untimed(event):
    """시작 또는 종료 시간이 0/-1 이면 시간 미지정 일정"""
    return (_as_int(event.start_time) in NO_TIME_VALUES
            or _as_int(event.end_time) in NO_TIME_VALUES)


def active_days(day_mask):
    """요일 비트마스크 → 활성 요일 키 목록 ("1"=월 ... "5"=금)"""
    mask = _as_int(day_mask)
    if not mask:
        return []
    return [str(bit) for bit in WEEKDAY_BITS if mask & (1 << bit)]


def bitmask_to_day_array(day_mask):
    """요일 비트마스크 → [월, 화, 수, 목, 금] bool 배열"""
    mask = _as_int(day_mask) or 0
    return [bool(mask & (1 << bit)) for bit in WEEKDAY_BITS]


def decode(events):
    """일정 목록을 요일별 (시간 지정, 시간 미지정) 버킷으로 분배

    요일 비트가 여러 개인 일정은 해당 요일마다 한 번씩 들어가며,
    각 버킷 안의 순서는 입력 순서를 따른다.
    """
    by_day = {}
    untimed_by_day = {}
    for event in events:
        target = untimed_by_day if is_untimed(event) else by_day
        for day_key in active_days(event.day):
            target.setdefault(day_key, []).append(event)
    return by_day, untimed_by_day


def _percent(value):
    text = repr(float(value))
    if text.endswith('.0'):
        text = text[:-2]
    return f"{text}%"


def _minutes_or_zero(value):
    minutes = packed_to_minutes(value)
    return 0 if minutes is None else minutes


def _position(event, width, left, start_hour, end_hour):
    total_minutes = (end_hour - start_hour) * 60
    start = packed_to_minutes(event.start_time)
    end = packed_to_minutes(event.end_time)

    # 형식 오류 시간은 위치/길이 0 (검증은 저장 전에 처리)
    if start is None or end is None or total_minutes <= 0:
        top = height = 0
    else:
        top = (start - start_hour * 60) / total_minutes * 100
        height = max(end - start, 0) / total_minutes * 100

    base = {f.name: getattr(event, f.name) for f in fields(Event)}
    return PositionedEvent(
        **base,
        start_time_formatted=format_time(event.start_time),
        end_time_formatted=format_time(event.end_time),
        width=_percent(width),
        left=_percent(left),
        top_position=_percent(top),
        height_position=_percent(height),
    )


def layout(day_events, start_hour=Config.CALENDAR_START_HOUR, end_hour=Config.CALENDAR_END_HOUR):
    """하루치 시간 지정 일정의 가로 열/세로 위치 계산

    시작 시간 순으로 정렬한 뒤, 현재 그룹의 어느 한 일정이라도 끝나기 전에
    시작하는 일정은 같은 그룹에 넣는다 (모든 일정과 겹칠 필요는 없음).
    그룹 크기 k 에 대해 각 일정은 100/k 폭을 순서대로 나눠 갖는다.
    """
    ordered = sorted(day_events, key=lambda e: _minutes_or_zero(e.start_time))

    groups = []
    current = []
    for event in ordered:
        start = _minutes_or_zero(event.start_time)
        if any(start < _minutes_or_zero(member.end_time) for member in current):
            current.append(event)
        else:
            if current:
                groups.append(current)
            current = [event]
    if current:
        groups.append(current)

    positioned = []
    for group in groups:
        width = 100 / len(group)
        for index, event in enumerate(group):
            positioned.append(_position(event, width, index * width, start_hour, end_hour))
    return positioned


def process_events(raw_events, start_hour=Config.CALENDAR_START_HOUR, end_hour=Config.CALENDAR_END_HOUR):
    """일정 목록 → 요일별 배치 완료된 렌더 모델"""
    by_day, untimed_by_day = decode(raw_events)
    result = ProcessedEvents(no_time_events_by_day=untimed_by_day)
    for day_key, day_events in by_day.items():
        result.events_by_day[day_key] = layout(day_events, start_hour, end_hour)
    return result


def _unpack_day(day_info):
    # [[start, end], active]
    if not isinstance(day_info, (list, tuple)) or len(day_info) < 2:
        return None, False
    time_pair = day_info[0]
    if not isinstance(time_pair, (list, tuple)) or len(time_pair) < 2:
        return None, False
    return (time_pair[0], time_pair[1]), bool(day_info[1])


def schedule_to_preview_events(schedule):
    """후보 시간표(과목 배열) → 캘린더 미리보기 일정 목록"""
    if not isinstance(schedule, list):
        return []

    previews = []
    for course_index, course in enumerate(schedule):
        if not isinstance(course, dict) or not isinstance(course.get('classes'), list):
            continue

        code = course.get('code') or ''
        name = course.get('name') or ''
        course_part = course.get('id') or f"{code or 'course'}{name or course_index}"

        for meeting_index, meeting in enumerate(course['classes']):
            if not isinstance(meeting, dict) or not isinstance(meeting.get('days'), list):
                continue

            day_mask = 0
            start_time = end_time = None
            for day_index, day_info in enumerate(meeting['days'][:5]):
                time_pair, is_active = _unpack_day(day_info)
                if time_pair is None:
                    continue
                if is_active and time_pair[0] != -1:
                    day_mask |= 1 << (day_index + 1)
                    if start_time is None:
                        start_time, end_time = time_pair

            section = meeting.get('section') or ''
            event_id = f"preview-{course_part}-{section or meeting_index}"
            title = f"{code} {name}".strip()
            if section:
                title += f" - Sec {section}"
            common = {
                "title": title,
                "professor": meeting.get('instructor') or '',
                "description": course.get('description') or '',
                "is_preview": True,
            }

            if not day_mask:
                # 시간 미정 강의는 평일 전체의 시간 미지정 영역에 표시
                for day_index in range(5):
                    previews.append(Event(
                        id=f"{event_id}-notime-{day_index}",
                        start_time=0, end_time=0, day=1 << (day_index + 1),
                        **common,
                    ))
                continue

            previews.append(Event(
                id=event_id, start_time=start_time, end_time=end_time, day=day_mask,
                **common,
            ))
    return previews


def format_busy_times(events):
    """사용자 일정 → 시간표 생성기에 넘길 제외 시간 목록 (id 중복 제거)"""
    seen = set()
    busy = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        busy.append({
            "time": [event.start_time, event.end_time],
            "days": bitmask_to_day_array(event.day),
        })
    return busy
