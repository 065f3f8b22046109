from rest_framework import serializers

from exams.serializers import StudentQuestionSerializer

from .models import ExamAttempt, Grade, Result, StudentStats
from .services import timer


class AttemptSerializer(serializers.ModelSerializer):
    """Lightweight serializer for lists / dashboard history."""
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    remaining_seconds = serializers.SerializerMethodField()

    class Meta:
        model = ExamAttempt
        fields = [
            'id', 'exam', 'exam_title', 'student', 'student_name', 'status',
            'started_at', 'submitted_at', 'time_taken', 'was_forced',
            'total_score', 'version', 'graded_at', 'remaining_seconds'
        ]
        read_only_fields = fields

    def get_remaining_seconds(self, obj):
        if not obj.is_draft:
            return 0
        return timer.remaining_seconds(obj)


class AttemptSessionSerializer(AttemptSerializer):
    """Heavy serializer for taking the exam. Includes QUESTIONS, never the answers key."""
    questions = serializers.SerializerMethodField()
    duration = serializers.IntegerField(source='exam.duration', read_only=True)
    is_timed = serializers.BooleanField(source='exam.is_timed', read_only=True)
    urgency = serializers.SerializerMethodField()
    clock = serializers.SerializerMethodField()

    class Meta(AttemptSerializer.Meta):
        fields = AttemptSerializer.Meta.fields + ['answers', 'duration', 'is_timed', 'urgency', 'clock', 'questions']
        read_only_fields = fields

    def get_questions(self, obj):
        return StudentQuestionSerializer(obj.exam.ordered_questions(), many=True).data

    def get_urgency(self, obj):
        return timer.urgency_for(self.get_remaining_seconds(obj))

    def get_clock(self, obj):
        remaining = self.get_remaining_seconds(obj)
        return None if remaining is None else timer.format_clock(remaining)


class AnswersSerializer(serializers.Serializer):
    answers = serializers.DictField(child=serializers.CharField(allow_blank=True, allow_null=True, trim_whitespace=False))


class SubmitSerializer(serializers.Serializer):
    answers = serializers.DictField(
        child=serializers.CharField(allow_blank=True, allow_null=True, trim_whitespace=False), required=False
    )
    forced = serializers.BooleanField(default=False)


class GradeSubmitSerializer(serializers.Serializer):
    # Payload: { "scores": {"12": 4, "13": 10}, "feedback": "...", "expected_version": 3 }
    scores = serializers.DictField()
    feedback = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    expected_version = serializers.IntegerField(required=False, min_value=1)


class GradePreviewSerializer(serializers.Serializer):
    inputs = serializers.DictField(child=serializers.CharField(allow_blank=True, allow_null=True))


class GradeSerializer(serializers.ModelSerializer):
    grader = serializers.StringRelatedField(read_only=True)

    class Meta:
        model = Grade
        fields = ['id', 'question', 'score', 'max_score', 'is_correct', 'outcome', 'grader', 'graded_at']


class ResultSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    graded_by = serializers.StringRelatedField(read_only=True)
    submitted_at = serializers.DateTimeField(source='attempt.submitted_at', read_only=True)
    status = serializers.CharField(source='attempt.status', read_only=True)

    class Meta:
        model = Result
        fields = [
            'id', 'attempt', 'exam', 'exam_title', 'student', 'student_name', 'score',
            'total_marks', 'percentage', 'passed', 'feedback', 'graded_by', 'graded_at',
            'submitted_at', 'status'
        ]


class StudentStatsSerializer(serializers.ModelSerializer):
    class Meta:
        model = StudentStats
        fields = [
            'total_attempts', 'graded_attempts', 'average_score',
            'average_percentage', 'last_attempt_at', 'updated_at'
        ]
