"""
Scheduler Dashboard - 데이터 모델
"""
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class Event:
    """주간 반복 일정 (사용자 일정 또는 후보 시간표 미리보기)"""
    id: str
    title: str
    start_time: int = 0        # 1330 = 13:30, 0/-1 = 시간 미지정
    end_time: int = 0
    day: int = 0               # 요일 비트마스크 (월=2, 화=4, ... 금=32)
    professor: str = ""
    description: str = ""
    is_preview: bool = False

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id") or "",
            title=data.get("title") or "",
            start_time=data.get("startTime", 0),
            end_time=data.get("endTime", 0),
            day=data.get("day", 0),
            professor=data.get("professor") or "",
            description=data.get("description") or "",
            is_preview=bool(data.get("isPreview", False)),
        )

    def to_dict(self):
        d = {
            "id": self.id,
            "title": self.title,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "day": self.day,
            "professor": self.professor,
            "description": self.description,
        }
        if self.is_preview:
            d["isPreview"] = True
        return d


@dataclass
class PositionedEvent(Event):
    """캘린더 그리드 배치가 계산된 일정 (저장하지 않음)"""
    start_time_formatted: str = "00:00"
    end_time_formatted: str = "00:00"
    width: str = "100%"
    left: str = "0%"
    top_position: str = "0%"
    height_position: str = "0%"

    def to_dict(self):
        d = super().to_dict()
        d.update({
            "startTimeFormatted": self.start_time_formatted,
            "endTimeFormatted": self.end_time_formatted,
            "width": self.width,
            "left": self.left,
            "topPosition": self.top_position,
            "heightPosition": self.height_position,
        })
        return d


@dataclass
class ProcessedEvents:
    """요일별로 정리된 캘린더 렌더 모델"""
    events_by_day: Dict[str, List[PositionedEvent]] = field(default_factory=dict)
    no_time_events_by_day: Dict[str, List[Event]] = field(default_factory=dict)

    def to_dict(self):
        return {
            "eventsByDay": {
                day: [e.to_dict() for e in events]
                for day, events in self.events_by_day.items()
            },
            "noTimeEventsByDay": {
                day: [e.to_dict() for e in events]
                for day, events in self.no_time_events_by_day.items()
            },
        }


@dataclass
class ClassParam:
    """시간표 생성용 수강 과목 조건"""
    id: str
    code: str = ""            # "CSC"
    name: str = ""            # "116"
    section: str = ""         # "001" 또는 "001L"
    instructor: str = ""      # "Last,First"

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id") or "",
            code=data.get("code") or "",
            name=data.get("name") or "",
            section=data.get("section") or "",
            instructor=data.get("instructor") or "",
        )

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "section": self.section,
            "instructor": self.instructor,
        }


@dataclass
class ScrapeState:
    """시간표 생성 진행 상태"""
    is_scraping: bool = False
    status: str = ""

    def to_dict(self):
        return {"is_scraping": self.is_scraping, "status": self.status}
