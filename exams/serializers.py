# exams/serializers.py
from rest_framework import serializers

from assessments.services.autograde import normalize_answer
from cores.models import PlatformSetting

from .models import default_passing_marks, Exam, ExamQuestion, Question


# --- Question Serializers ---

class QuestionSerializer(serializers.ModelSerializer):
    """
    Teacher view of a question, correct answer included.

    The payload is a tagged union on question_type: an mcq carries at least two
    distinct options and a correct_answer equal to one of them; a descriptive
    question carries no options and an optional reference answer.
    """
    options = serializers.ListField(child=serializers.CharField(allow_blank=True), required=False)
    created_by = serializers.StringRelatedField(read_only=True)

    class Meta:
        model = Question
        fields = [
            'id', 'question_type', 'question_text', 'options', 'correct_answer',
            'points', 'subject', 'difficulty', 'created_by', 'created_at'
        ]
        read_only_fields = ['created_at']

    def validate(self, attrs):
        instance = self.instance
        q_type = attrs.get('question_type', getattr(instance, 'question_type', Question.QuestionType.MCQ))
        options = attrs.get('options', getattr(instance, 'options', None) or [])
        correct = attrs.get('correct_answer', getattr(instance, 'correct_answer', ''))

        if q_type == Question.QuestionType.DESCRIPTIVE:
            attrs['options'] = []
            return attrs

        cleaned = [" ".join(str(opt).split()) for opt in options if str(opt).strip()]
        normalized = [normalize_answer(opt) for opt in cleaned]
        if len(set(normalized)) < 2:
            raise serializers.ValidationError({'options': "A multiple-choice question needs at least two distinct options."})
        if len(set(normalized)) != len(normalized):
            raise serializers.ValidationError({'options': "Options must be distinct."})
        if normalize_answer(correct) not in normalized:
            raise serializers.ValidationError({'correct_answer': "The correct answer must be one of the options."})

        attrs['options'] = cleaned
        # Store the option exactly as listed
        attrs['correct_answer'] = cleaned[normalized.index(normalize_answer(correct))]
        return attrs


class StudentQuestionSerializer(serializers.ModelSerializer):
    """What a student sees while taking an exam: no correct answer."""

    class Meta:
        model = Question
        fields = ['id', 'question_type', 'question_text', 'options', 'points']


class ExamQuestionSerializer(serializers.ModelSerializer):
    question = QuestionSerializer(read_only=True)

    class Meta:
        model = ExamQuestion
        fields = ['id', 'order_number', 'question']


# --- Exam Serializers ---

class ExamSerializer(serializers.ModelSerializer):
    created_by = serializers.StringRelatedField(read_only=True)
    total_questions = serializers.IntegerField(source='exam_questions.count', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'subject', 'description', 'duration', 'total_marks',
            'passing_marks', 'status', 'start_time', 'end_time', 'is_timed',
            'auto_close', 'created_by', 'total_questions', 'created_at', 'updated_at'
        ]
        read_only_fields = ['status', 'created_at', 'updated_at']
        extra_kwargs = {
            'duration': {'required': False},
            'passing_marks': {'required': False},
        }

    def validate(self, attrs):
        instance = self.instance
        total_marks = attrs.get('total_marks', getattr(instance, 'total_marks', 0))
        passing_marks = attrs.get('passing_marks', getattr(instance, 'passing_marks', None))
        start_time = attrs.get('start_time', getattr(instance, 'start_time', None))
        end_time = attrs.get('end_time', getattr(instance, 'end_time', None))

        locked_total = instance is not None and instance.exam_questions.exists()
        if locked_total and 'total_marks' in attrs and attrs['total_marks'] != instance.points_total():
            raise serializers.ValidationError({'total_marks': "Total marks follow the points of the assigned questions."})
        if passing_marks is not None and passing_marks > total_marks:
            raise serializers.ValidationError({'passing_marks': "Passing marks cannot exceed total marks."})
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({'end_time': "End time must be after start time."})
        if attrs.get('auto_close') and not end_time and not attrs.get('is_timed', getattr(instance, 'is_timed', True)):
            raise serializers.ValidationError({'auto_close': "Auto-close needs a duration or an end time."})
        return attrs

    def create(self, validated_data):
        # Fall back to the platform defaults for anything left out
        defaults = PlatformSetting.load()
        validated_data.setdefault('duration', defaults.default_exam_duration)
        if 'passing_marks' not in validated_data:
            total = validated_data.get('total_marks', 0)
            validated_data['passing_marks'] = default_passing_marks(total, defaults.default_pass_percentage)
        return super().create(validated_data)


class ExamListSerializer(serializers.ModelSerializer):
    total_questions = serializers.IntegerField(source='exam_questions.count', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'subject', 'duration', 'total_marks', 'passing_marks',
            'start_time', 'end_time', 'is_timed', 'total_questions'
        ]


class ExamDetailSerializer(ExamSerializer):
    """Exam with its ordered questions. Correct answers only for the exam's teacher."""
    questions = serializers.SerializerMethodField()

    class Meta(ExamSerializer.Meta):
        fields = ExamSerializer.Meta.fields + ['questions']

    def get_questions(self, obj):
        request = self.context.get('request')
        questions = obj.ordered_questions()
        if request is not None and obj.is_owned_by(request.user):
            return QuestionSerializer(questions, many=True).data
        return StudentQuestionSerializer(questions, many=True).data


class QuestionIdsSerializer(serializers.Serializer):
    question_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
