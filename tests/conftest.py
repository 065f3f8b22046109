import itertools

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from assessments.services.context import SessionContext
from exams.models import Exam, ExamQuestion, Question
from users.models import User

PASSWORD = "Str0ng-pass-phrase"

_sequence = itertools.count(1)


@pytest.fixture
def make_user(db):
    def _make(role=User.Role.STUDENT, **kwargs):
        n = next(_sequence)
        email = kwargs.pop("email", f"{role}{n}@example.com")
        return User.objects.create_user(
            username=email,
            email=email,
            password=PASSWORD,
            role=role,
            first_name=kwargs.pop("first_name", role.title()),
            last_name=kwargs.pop("last_name", str(n)),
            **kwargs,
        )

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user(User.Role.TEACHER)


@pytest.fixture
def other_teacher(make_user):
    return make_user(User.Role.TEACHER)


@pytest.fixture
def student(make_user):
    return make_user(User.Role.STUDENT)


@pytest.fixture
def other_student(make_user):
    return make_user(User.Role.STUDENT)


@pytest.fixture
def admin_user(make_user):
    return make_user(User.Role.ADMIN, is_staff=True)


@pytest.fixture
def make_question(db):
    def _make(owner, question_type=Question.QuestionType.MCQ, points=10, **kwargs):
        if question_type == Question.QuestionType.MCQ:
            kwargs.setdefault("options", ["Paris", "London", "Berlin", "Madrid"])
            kwargs.setdefault("correct_answer", "Paris")
        return Question.objects.create(
            created_by=owner,
            question_type=question_type,
            question_text=kwargs.pop("question_text", f"Question {next(_sequence)}?"),
            points=points,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_exam(db):
    def _make(owner, questions=(), status=Exam.Status.PUBLISHED, total_marks=None, **kwargs):
        if total_marks is None:
            total_marks = sum(q.points for q in questions)
        exam = Exam.objects.create(
            created_by=owner,
            title=kwargs.pop("title", f"Exam {next(_sequence)}"),
            subject=kwargs.pop("subject", "General"),
            duration=kwargs.pop("duration", 30),
            total_marks=total_marks,
            passing_marks=kwargs.pop("passing_marks", total_marks // 2),
            status=status,
            **kwargs,
        )
        for order, question in enumerate(questions, start=1):
            ExamQuestion.objects.create(exam=exam, question=question, order_number=order)
        return exam

    return _make


@pytest.fixture
def mcq_exam(teacher, make_question, make_exam):
    """Two 10-point MCQs: capital of France (Paris), largest planet (Jupiter)."""
    q1 = make_question(teacher, question_text="Capital of France?")
    q2 = make_question(
        teacher,
        question_text="Largest planet?",
        options=["Mars", "Jupiter", "Venus"],
        correct_answer="Jupiter",
    )
    return make_exam(teacher, [q1, q2])


@pytest.fixture
def descriptive_exam(teacher, make_question, make_exam):
    q1 = make_question(teacher, Question.QuestionType.DESCRIPTIVE, question_text="Explain photosynthesis.")
    q2 = make_question(teacher, Question.QuestionType.DESCRIPTIVE, question_text="Describe the water cycle.")
    return make_exam(teacher, [q1, q2])


@pytest.fixture
def mixed_exam(teacher, make_question, make_exam):
    mcq = make_question(teacher, question_text="Capital of France?")
    essay = make_question(teacher, Question.QuestionType.DESCRIPTIVE, question_text="Explain photosynthesis.")
    return make_exam(teacher, [mcq, essay])


@pytest.fixture
def ctx():
    return lambda user: SessionContext(user=user)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


@pytest.fixture(autouse=True)
def clear_cache():
    # PlatformSetting is cached; the database row is rolled back between tests
    cache.clear()
    yield
    cache.clear()
