import csv
import io
import logging

from django.db import transaction
from django.db.models import Max, RestrictedError
from rest_framework import filters, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from assessments.models import Result
from assessments.permissions import IsTeacherOrAdmin
from assessments.serializers import AttemptSessionSerializer, ResultSerializer
from assessments.services.attempts import ensure_exam_configured, start_attempt
from assessments.services.context import SessionContext
from assessments.services.transitions import advance_exam
from cores.models import AuditLog, PlatformSetting

from .models import Exam, ExamQuestion, Question
from .serializers import (
    ExamDetailSerializer,
    ExamListSerializer,
    ExamSerializer,
    QuestionIdsSerializer,
    QuestionSerializer,
)

logger = logging.getLogger(__name__)


def _ensure_questions_editable(exam):
    if exam.attempts.exists():
        raise ValidationError({'question_ids': "Questions cannot change once students have started this exam."})


class ExamViewSet(viewsets.ModelViewSet):
    # Enable search on title and subject
    filter_backends = [filters.SearchFilter]
    search_fields = ['title', 'subject']

    def get_queryset(self):
        user = self.request.user
        queryset = Exam.objects.select_related('created_by').order_by('-created_at')
        if user.is_admin_role:
            return queryset
        if user.is_teacher:
            return queryset.filter(created_by=user)
        # Students only ever see published exams
        return queryset.filter(status=Exam.Status.PUBLISHED)

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ExamDetailSerializer
        if self.action == 'list' and not self.request.user.is_teacher:
            return ExamListSerializer
        return ExamSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'start']:
            return [permissions.IsAuthenticated()]
        return [IsTeacherOrAdmin()]

    def perform_create(self, serializer):
        exam = serializer.save(created_by=self.request.user)
        AuditLog.record(actor=self.request.user, action=AuditLog.Action.CREATE, target=exam, details=exam.title)

    def perform_update(self, serializer):
        exam = serializer.save()
        AuditLog.record(actor=self.request.user, action=AuditLog.Action.UPDATE, target=exam, details=exam.title)

    def perform_destroy(self, instance):
        SessionContext.from_request(self.request).require_owner_of(instance)
        AuditLog.record(actor=self.request.user, action=AuditLog.Action.DELETE, target=instance, details=instance.title)
        instance.delete()

    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        exam = self.get_object()
        SessionContext.from_request(request).require_owner_of(exam)
        ensure_exam_configured(exam)
        if advance_exam(exam, Exam.Status.PUBLISHED):
            exam.save(update_fields=['status', 'updated_at'])
            AuditLog.record(actor=request.user, action=AuditLog.Action.PUBLISH, target=exam, details=exam.title)
        return Response(ExamSerializer(exam).data)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        exam = self.get_object()
        SessionContext.from_request(request).require_owner_of(exam)
        if advance_exam(exam, Exam.Status.ARCHIVED):
            exam.save(update_fields=['status', 'updated_at'])
            AuditLog.record(actor=request.user, action=AuditLog.Action.ARCHIVE, target=exam, details=exam.title)
        return Response(ExamSerializer(exam).data)

    @action(detail=True, methods=['post'], url_path='assign-questions')
    def assign_questions(self, request, pk=None):
        """
        Appends questions from the bank to this exam, in the order given.
        Payload: { "question_ids": [1, 2, 3] }
        """
        exam = self.get_object()
        SessionContext.from_request(request).require_owner_of(exam)
        serializer = QuestionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        question_ids = serializer.validated_data['question_ids']

        _ensure_questions_editable(exam)

        questions = Question.objects.filter(id__in=question_ids)
        if not request.user.is_admin_role:
            questions = questions.filter(created_by=request.user)
        found = {q.id: q for q in questions}
        missing = [qid for qid in question_ids if qid not in found]
        if missing:
            raise ValidationError({'question_ids': f"Unknown questions: {missing}"})

        with transaction.atomic():
            already = set(exam.exam_questions.values_list('question_id', flat=True))
            next_order = (exam.exam_questions.aggregate(last=Max('order_number'))['last'] or 0) + 1
            added = 0
            for qid in dict.fromkeys(question_ids):
                if qid in already:
                    continue
                ExamQuestion.objects.create(exam=exam, question=found[qid], order_number=next_order)
                next_order += 1
                added += 1
            exam.sync_total_marks(PlatformSetting.load().default_pass_percentage)

        return Response({
            "status": f"Added {added} questions to {exam.title}",
            "added": added,
            "total_marks": exam.total_marks,
        })

    @action(detail=True, methods=['post'], url_path='remove-questions')
    def remove_questions(self, request, pk=None):
        """Detaches questions from the exam, returning them to the bank."""
        exam = self.get_object()
        SessionContext.from_request(request).require_owner_of(exam)
        serializer = QuestionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        _ensure_questions_editable(exam)
        with transaction.atomic():
            removed, _ = exam.exam_questions.filter(question_id__in=serializer.validated_data['question_ids']).delete()
            exam.sync_total_marks(PlatformSetting.load().default_pass_percentage)
        return Response({"status": "Questions returned to bank", "removed": removed, "total_marks": exam.total_marks})

    @action(detail=True, methods=['post'])
    def start(self, request, pk=None):
        """Student opens (or resumes) their attempt and receives the questions without answers."""
        exam = self.get_object()
        attempt, created = start_attempt(SessionContext.from_request(request), exam)
        serializer = AttemptSessionSerializer(attempt, context={'request': request})
        return Response(serializer.data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

    @action(detail=True, methods=['get'])
    def results(self, request, pk=None):
        exam = self.get_object()
        SessionContext.from_request(request).require_owner_of(exam)
        results = Result.objects.filter(exam=exam).select_related('student', 'attempt', 'exam')
        return Response(ResultSerializer(results, many=True).data)


class QuestionViewSet(viewsets.ModelViewSet):
    serializer_class = QuestionSerializer
    permission_classes = [IsTeacherOrAdmin]

    # Enable Search and Filtering for the Question Bank
    filter_backends = [filters.SearchFilter]
    search_fields = ['question_text', 'subject']

    def get_queryset(self):
        queryset = Question.objects.select_related('created_by').order_by('-id')
        if not self.request.user.is_admin_role:
            queryset = queryset.filter(created_by=self.request.user)
        # Filter by Exam if provided ?exam_id=1
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_links__exam_id=exam_id)
        question_type = self.request.query_params.get('question_type')
        if question_type:
            queryset = queryset.filter(question_type=question_type)
        return queryset

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def perform_update(self, serializer):
        question = serializer.instance
        exams = Exam.objects.filter(exam_questions__question=question)
        points_changed = 'points' in serializer.validated_data and serializer.validated_data['points'] != question.points
        if points_changed and exams.filter(attempts__isnull=False).exists():
            raise ValidationError({'points': "Points cannot change once students have started an exam using this question."})
        with transaction.atomic():
            serializer.save()
            if points_changed:
                defaults = PlatformSetting.load()
                for exam in exams.distinct():
                    exam.sync_total_marks(defaults.default_pass_percentage)

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except RestrictedError:
            raise ValidationError("Remove this question from its exams before deleting it.")

    @action(detail=False, methods=['post'], url_path='bulk-upload', parser_classes=[MultiPartParser, FormParser])
    def bulk_upload(self, request):
        """
        Upload questions via CSV.
        Expected CSV Header: question_text, question_type, subject, difficulty, points, options, correct_answer
        Options are separated by "|". Nothing is saved unless every row is valid.
        """
        file_obj = request.FILES.get('file')
        if not file_obj:
            raise ValidationError({'file': "No file uploaded."})

        try:
            reader = csv.DictReader(io.StringIO(file_obj.read().decode('utf-8-sig')))
            rows = list(reader)
        except (UnicodeDecodeError, csv.Error) as exc:
            raise ValidationError({'file': f"Could not read CSV: {exc}"})

        serializers = []
        errors = {}
        for line, row in enumerate(rows, start=2):
            raw_options = row.get('options') or ''
            serializer = QuestionSerializer(data={
                'question_text': row.get('question_text', ''),
                'question_type': (row.get('question_type') or 'mcq').strip().lower(),
                'subject': row.get('subject') or '',
                'difficulty': (row.get('difficulty') or 'medium').strip().lower(),
                'points': row.get('points') or 1,
                'options': [opt for opt in raw_options.split('|') if opt.strip()],
                'correct_answer': row.get('correct_answer') or '',
            })
            if serializer.is_valid():
                serializers.append(serializer)
            else:
                errors[f"line {line}"] = serializer.errors

        if errors:
            raise ValidationError(errors)

        with transaction.atomic():
            for serializer in serializers:
                serializer.save(created_by=request.user)

        logger.info("%s uploaded %s questions", request.user, len(serializers))
        return Response(
            {"status": f"Successfully uploaded {len(serializers)} questions", "created": len(serializers)},
            status=status.HTTP_201_CREATED,
        )
