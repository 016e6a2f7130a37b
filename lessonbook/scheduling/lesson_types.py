"""
Lesson catalogue. Only the duration matters for scheduling: a create request
that names a lesson type but no end time gets start + duration.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from lessonbook.scheduling.errors import UnknownLessonTypeError


@dataclass(frozen=True)
class LessonType:
    id: str
    name: str
    duration_minutes: int


LESSON_TYPES = {
    lt.id: lt for lt in (
        LessonType("standard",  "Standard Lesson",   60),
        LessonType("extended",  "Extended Lesson",   90),
        LessonType("highway",   "Highway Driving",   120),
        LessonType("night",     "Night Driving",     60),
        LessonType("parking",   "Parking Practice",  45),
        LessonType("exam_prep", "Exam Preparation",  90),
        LessonType("refresher", "Refresher Course",  60),
    )
}


def get_lesson_type(lesson_type_id: str) -> LessonType:
    try:
        return LESSON_TYPES[lesson_type_id]
    except KeyError:
        raise UnknownLessonTypeError(lesson_type_id) from None


def default_end(start_at: datetime, lesson_type_id: str) -> datetime:
    return start_at + timedelta(minutes=get_lesson_type(lesson_type_id).duration_minutes)
