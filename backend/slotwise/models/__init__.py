from slotwise.models.activity_log import ActivityLog  # noqa: F401
from slotwise.models.batch import Batch  # noqa: F401
from slotwise.models.course import Course  # noqa: F401
from slotwise.models.faculty import Faculty  # noqa: F401
from slotwise.models.room import Room  # noqa: F401
from slotwise.models.timetable import Timetable  # noqa: F401
