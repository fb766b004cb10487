"""Test cases for helper predicates."""

import pytest

from classroom_rls.audit import TEST_CLASSROOMS, TEST_USERS
from classroom_rls.exceptions import MalformedRequestError, UnknownHelperError
from classroom_rls.security import call_helper, is_admin, is_teacher, owns_classroom, owns_student_record


class TestRoleHelpers:

    def test_is_teacher(self, teacher1, student1, admin):
        assert is_teacher(teacher1) is True
        assert is_teacher(student1) is False
        assert is_teacher(admin) is False
        assert is_teacher(None) is False

    def test_is_admin(self, admin, teacher1):
        assert is_admin(admin) is True
        assert is_admin(teacher1) is False
        assert is_admin(None) is False


class TestOwnershipHelpers:

    def test_owns_student_record(self, student1):
        assert owns_student_record(student1, TEST_USERS["STUDENT_1"])
        assert not owns_student_record(student1, TEST_USERS["STUDENT_2"])
        assert not owns_student_record(None, TEST_USERS["STUDENT_1"])
        assert not owns_student_record(student1, None)

    def test_owns_classroom(self, seeded_database, teacher1, teacher2):
        with seeded_database.session() as session:
            assert owns_classroom(session, teacher1, TEST_CLASSROOMS["MATH_101"])
            assert not owns_classroom(session, teacher2, TEST_CLASSROOMS["MATH_101"])
            assert not owns_classroom(session, teacher1, "no-such-classroom")
            assert not owns_classroom(session, None, TEST_CLASSROOMS["MATH_101"])


class TestCallHelper:

    def test_call_by_name(self, seeded_database, teacher1):
        with seeded_database.session() as session:
            assert call_helper(session, teacher1, "is_teacher") is True
            assert call_helper(session, teacher1, "owns_classroom",
                               {"classroom_id": TEST_CLASSROOMS["SCIENCE_101"]}) is True

    def test_unknown_helper(self, seeded_database, teacher1):
        with seeded_database.session() as session:
            with pytest.raises(UnknownHelperError) as exc_info:
                call_helper(session, teacher1, "is_principal")
        assert exc_info.value.name == "is_principal"

    def test_wrong_arguments(self, seeded_database, student1):
        with seeded_database.session() as session:
            with pytest.raises(MalformedRequestError):
                call_helper(session, student1, "owns_student_record")
            with pytest.raises(MalformedRequestError):
                call_helper(session, student1, "is_teacher", {"user_id": student1.id})

    def test_validate_student_access(self, seeded_database, student1):
        """Test the student-access check under the name clients call it by."""
        with seeded_database.session() as session:
            assert call_helper(session, student1, "validate_student_access",
                               {"target_user_id": TEST_USERS["STUDENT_1"]}) is True
            assert call_helper(session, student1, "validate_student_access",
                               {"target_user_id": TEST_USERS["STUDENT_2"]}) is False
            with pytest.raises(MalformedRequestError):
                call_helper(session, student1, "validate_student_access", {"user_id": student1.id})
