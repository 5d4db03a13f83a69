import uuid
from collections import OrderedDict
from datetime import datetime

from mcare.backend.api.dependencies import get_attendance_service, get_duty_service
from mcare.backend.models.db_models import Attendance
from mcare.backend.services.attendance_service import AttendanceEntry, MarkedAttendance, UNKNOWN_SECTION
from mcare.backend.services.errors import AlreadyMarkedTodayError, NotFoundError, UnknownUserError
from tests.factories import make_group, make_user


def _attendance(user, day=datetime(2025, 6, 10), time_in="08:00:00") -> Attendance:
    return Attendance(id=uuid.uuid4(), user_id=user.id, school_id=user.school_id, date=day, time_in=time_in)


# --- Marking ---

def test_admin_marks_attendance(client, services, login_as, admin, student):
    login_as(admin)
    services[get_attendance_service].mark.return_value = MarkedAttendance(
        attendance=_attendance(student), name="Ana Cruz"
    )

    response = client.get("/api/v1/attendance/mark/S001")

    assert response.status_code == 201
    assert response.json() == {
        "name": "Ana Cruz",
        "school_id": "S001",
        "date": "2025-06-10T00:00:00",
        "time_in": "08:00:00",
    }


def test_student_cannot_mark(client, services, login_as, student):
    login_as(student)
    assert client.get("/api/v1/attendance/mark/S001").status_code == 403
    services[get_attendance_service].mark.assert_not_awaited()


def test_second_mark_same_day_is_400(client, services, login_as, admin):
    login_as(admin)
    services[get_attendance_service].mark.side_effect = AlreadyMarkedTodayError("Attendance already marked for today.")

    response = client.get("/api/v1/attendance/mark/S001")

    assert response.status_code == 400
    assert response.json()["detail"] == "Attendance already marked for today."


def test_unknown_school_id_is_404(client, services, login_as, admin):
    login_as(admin)
    services[get_attendance_service].mark.side_effect = UnknownUserError("User not found.")

    assert client.get("/api/v1/attendance/mark/S404").status_code == 404


# --- Reading ---

def test_student_reads_own_attendance(client, services, login_as, student):
    login_as(student)
    services[get_attendance_service].list_for_user.return_value = (student, [_attendance(student)])

    response = client.get("/api/v1/attendance/S001")

    assert response.status_code == 200
    assert response.json()["records"][0]["time_in"] == "08:00:00"


def test_student_cannot_read_others_attendance(client, login_as, student):
    login_as(student)
    assert client.get("/api/v1/attendance/S002").status_code == 403
    assert client.get("/api/v1/student/attendance/fetchAttendance/S002").status_code == 403


def test_all_attendance_keeps_records_of_deleted_users(client, services, login_as, admin, student):
    login_as(admin)
    gone = make_user("S003")
    services[get_attendance_service].list_all.return_value = [
        AttendanceEntry(attendance=_attendance(student), user=student),
        AttendanceEntry(attendance=_attendance(gone)),
    ]

    response = client.get("/api/v1/attendance")

    assert response.status_code == 200
    data = response.json()
    assert data[0]["user"]["school_id"] == "S001"
    assert data[1]["user"] is None


# --- Student views ---

def test_attendance_by_section(client, services, login_as):
    professor = login_as(make_user("P001", role="professor"))
    gone = make_user("S003")
    services[get_attendance_service].list_by_section.return_value = OrderedDict([
        ("BSN-3A", [AttendanceEntry(attendance=_attendance(professor))]),
        (UNKNOWN_SECTION, [AttendanceEntry(attendance=_attendance(gone))]),
    ])

    response = client.get("/api/v1/student/attendance/fetchAllAttendance")

    assert response.status_code == 200
    assert [s["section"] for s in response.json()] == ["BSN-3A", UNKNOWN_SECTION]


def test_student_without_group_gets_404(client, services, login_as, student):
    login_as(student)
    services[get_duty_service].list_duties_for_user.side_effect = NotFoundError(
        "This user does not belong to any group, so no duties."
    )

    response = client.get(f"/api/v1/student/duties/fetchDuties/{student.id}")

    assert response.status_code == 404


def test_student_sees_group_duties(client, services, login_as, student):
    login_as(student)
    group = make_group("BSN-3A", [student])
    services[get_duty_service].list_duties_for_user.return_value = (student, group, [])

    response = client.get(f"/api/v1/student/duties/fetchDuties/{student.id}")

    assert response.status_code == 200
    assert response.json()["group"] == "BSN-3A"
