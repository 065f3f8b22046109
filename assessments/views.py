from rest_framework import generics, permissions, status, viewsets, views
from rest_framework.decorators import action
from rest_framework.response import Response

from exams.models import Exam, Question

from .models import ExamAttempt, Result, StudentStats
from .permissions import IsStudent, IsTeacherOrAdmin
from .serializers import (
    AnswersSerializer,
    AttemptSerializer,
    AttemptSessionSerializer,
    GradePreviewSerializer,
    GradeSerializer,
    GradeSubmitSerializer,
    ResultSerializer,
    StudentStatsSerializer,
    SubmitSerializer,
)
from .services import grading
from .services.attempts import save_answers, submit_attempt
from .services.context import SessionContext
from .services.review import build_review
from .services.stats import refresh_student_stats


class AttemptViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Students see their own attempts, teachers the attempts on their exams,
    admins everything. State changes go through the actions below.
    """
    serializer_class = AttemptSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = ExamAttempt.objects.select_related('exam', 'student')
        if not user.is_admin_role:
            if user.is_teacher:
                queryset = queryset.filter(exam__created_by=user)
            else:
                queryset = queryset.filter(student=user)

        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        attempt_status = self.request.query_params.get('status')
        if attempt_status:
            queryset = queryset.filter(status=attempt_status)
        return queryset

    def get_serializer_class(self):
        if self.action == 'retrieve' and self.get_object().is_draft:
            return AttemptSessionSerializer
        return AttemptSerializer

    def get_permissions(self):
        if self.action in ['answers', 'submit']:
            return [IsStudent()]
        if self.action in ['auto_grade', 'grade', 'grade_preview', 'close']:
            return [IsTeacherOrAdmin()]
        return [permissions.IsAuthenticated()]

    @action(detail=True, methods=['put', 'patch'])
    def answers(self, request, pk=None):
        """Autosave. Payload: { "answers": {"<question_id>": "<text>"} }"""
        serializer = AnswersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        attempt = save_answers(SessionContext.from_request(request), self.get_object(), serializer.validated_data['answers'])
        return Response(AttemptSessionSerializer(attempt).data)

    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        """
        Student submits answers (manually, or the countdown does it with forced=true).
        MCQ answers are scored immediately; an all-MCQ exam comes back graded.
        """
        serializer = SubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        attempt, summary = submit_attempt(
            SessionContext.from_request(request),
            self.get_object(),
            answers=serializer.validated_data.get('answers'),
            forced=serializer.validated_data['forced'],
        )
        return Response({
            "status": "Submitted",
            "attempt": AttemptSerializer(attempt).data,
            "summary": summary.to_dict(),
        })

    @action(detail=True, methods=['get'])
    def review(self, request, pk=None):
        return Response(build_review(self.get_object(), request.user))

    @action(detail=True, methods=['get'])
    def grades(self, request, pk=None):
        attempt = self.get_object()
        return Response(GradeSerializer(attempt.grades.select_related('grader'), many=True).data)

    @action(detail=True, methods=['post'], url_path='auto-grade')
    def auto_grade(self, request, pk=None):
        attempt = grading.auto_grade_mcq(SessionContext.from_request(request), self.get_object())
        return Response(AttemptSerializer(attempt).data)

    @action(detail=True, methods=['post'])
    def grade(self, request, pk=None):
        """Teacher submits per-question marks; re-grading replaces earlier values."""
        serializer = GradeSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        attempt = grading.submit_grades(
            SessionContext.from_request(request),
            self.get_object(),
            data['scores'],
            feedback=data.get('feedback'),
            expected_version=data.get('expected_version'),
        )
        return Response({
            "status": "Graded successfully",
            "attempt": AttemptSerializer(attempt).data,
            "result": ResultSerializer(attempt.result).data,
        })

    @action(detail=True, methods=['post'], url_path='grade-preview')
    def grade_preview(self, request, pk=None):
        """Running total for a grading form in progress. Writes nothing."""
        attempt = self.get_object()
        SessionContext.from_request(request).require_owner_of(attempt.exam)
        serializer = GradePreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        inputs = serializer.validated_data['inputs']

        max_points = {str(q['id']): q['points'] for q in attempt.snapshot_questions()}
        fields = {}
        for question_id, raw in inputs.items():
            if str(question_id) in max_points:
                fields[str(question_id)] = grading.parse_point_input(raw, max_points[str(question_id)])[0]
        return Response({
            "fields": fields,
            "total": grading.running_total(inputs, max_points),
            "total_marks": attempt.exam.total_marks,
        })

    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        attempt = grading.close_attempt(SessionContext.from_request(request), self.get_object())
        return Response(AttemptSerializer(attempt).data)


# --- TEACHER VIEWS ---

class PendingGradingListView(generics.ListAPIView):
    """Submitted attempts on the teacher's exams that still need marks."""
    permission_classes = [IsTeacherOrAdmin]
    serializer_class = AttemptSerializer

    def get_queryset(self):
        queryset = ExamAttempt.objects.select_related('exam', 'student').filter(
            status__in=[ExamAttempt.Status.SUBMITTED, ExamAttempt.Status.IN_REVIEW]
        ).order_by('submitted_at')
        if not self.request.user.is_admin_role:
            queryset = queryset.filter(exam__created_by=self.request.user)
        return queryset


class TeacherStatsView(views.APIView):
    """
    Returns aggregated statistics for the Teacher Dashboard.
    """
    permission_classes = [IsTeacherOrAdmin]

    def get(self, request):
        exams = Exam.objects.all()
        questions = Question.objects.all()
        attempts = ExamAttempt.objects.all()
        if not request.user.is_admin_role:
            exams = exams.filter(created_by=request.user)
            questions = questions.filter(created_by=request.user)
            attempts = attempts.filter(exam__created_by=request.user)

        return Response({
            "total_exams": exams.count(),
            "published_exams": exams.filter(status=Exam.Status.PUBLISHED).count(),
            "total_questions": questions.count(),
            "total_students": attempts.order_by().values('student').distinct().count(),
            "pending_grading": attempts.filter(
                status__in=[ExamAttempt.Status.SUBMITTED, ExamAttempt.Status.IN_REVIEW]
            ).count(),
            "graded_attempts": attempts.filter(
                status__in=[ExamAttempt.Status.GRADED, ExamAttempt.Status.CLOSED]
            ).count(),
        })


# --- SHARED / STUDENT VIEWS ---

class ResultListView(generics.ListAPIView):
    """Students: their released results. Teachers: results on their exams."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ResultSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Result.objects.select_related('exam', 'student', 'attempt', 'graded_by')
        if user.is_admin_role:
            pass
        elif user.is_teacher:
            queryset = queryset.filter(exam__created_by=user)
        else:
            queryset = queryset.filter(
                student=user,
                attempt__status__in=[ExamAttempt.Status.GRADED, ExamAttempt.Status.CLOSED],
            )
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return queryset


class StudentStatsView(views.APIView):
    permission_classes = [IsStudent]

    def get(self, request):
        stats = StudentStats.objects.filter(student=request.user).first()
        if stats is None:
            stats = refresh_student_stats(request.user)
        return Response(StudentStatsSerializer(stats).data, status=status.HTTP_200_OK)
