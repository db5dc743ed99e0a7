from rest_framework import serializers
from drf_spectacular.utils import extend_schema_field

from assessments.integrity import IntegrityEvent, IntegrityLogError, summarize
from assessments.models import Exam, Question, Submission
from assessments.permissions import is_grader


class QuestionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Question
        fields = [
            'id', 'exam', 'question_type', 'text', 'points', 'order', 'options',
            'correct_option_index', 'correct_boolean', 'correct_text'
        ]
        read_only_fields = ['id']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        if not (request and is_grader(request.user)):
            data.pop('correct_option_index', None)
            data.pop('correct_boolean', None)
            data.pop('correct_text', None)
        return data


class ExamListSerializer(serializers.ModelSerializer):
    question_count = serializers.IntegerField(read_only=True)
    total_points = serializers.DecimalField(max_digits=7, decimal_places=2, read_only=True)
    pending_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'duration_minutes', 'status',
            'question_count', 'total_points', 'pending_count', 'created_at', 'published_at'
        ]


class ExamDetailSerializer(ExamListSerializer):
    questions = QuestionSerializer(many=True, read_only=True)

    class Meta(ExamListSerializer.Meta):
        fields = ExamListSerializer.Meta.fields + ['questions']


class IntegrityEventSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=['focus', 'blur', 'terminate'])
    timestamp = serializers.DateTimeField()
    warning_number = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    time_away_seconds = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    reason = serializers.CharField(max_length=200, required=False, allow_null=True, allow_blank=True)


class SubmissionCreateSerializer(serializers.Serializer):
    exam = serializers.PrimaryKeyRelatedField(queryset=Exam.objects.all())
    candidate_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    answers = serializers.ListField(child=serializers.JSONField(allow_null=True), allow_empty=True)
    integrity_log = IntegrityEventSerializer(many=True, required=False, default=list)

    def validate_exam(self, exam):
        if not exam.is_published:
            raise serializers.ValidationError("This exam is not available.")
        return exam

    def validate(self, data):
        question_count = data['exam'].get_question_count()
        if len(data['answers']) > question_count:
            raise serializers.ValidationError(
                {'answers': f"Got {len(data['answers'])} answers for {question_count} questions."}
            )

        events = [IntegrityEvent.from_dict(e) for e in data.get('integrity_log', [])]
        try:
            data['summary'] = summarize(events)
        except IntegrityLogError as e:
            raise serializers.ValidationError({'integrity_log': str(e)})
        data['integrity_log'] = [e.to_dict() for e in events]
        return data


class SubmissionListSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    percentage = serializers.FloatField(read_only=True, allow_null=True)

    class Meta:
        model = Submission
        fields = [
            'id', 'exam', 'exam_title', 'candidate_name', 'submitted_at',
            'graded', 'graded_at', 'total_score', 'max_score', 'percentage',
            'warning_count', 'total_defocus_count', 'terminated'
        ]


class SubmissionDetailSerializer(SubmissionListSerializer):
    integrity = serializers.SerializerMethodField()

    class Meta(SubmissionListSerializer.Meta):
        fields = SubmissionListSerializer.Meta.fields + [
            'answers', 'integrity_log', 'question_scores', 'question_comments', 'integrity'
        ]

    @extend_schema_field(serializers.DictField())
    def get_integrity(self, obj) -> dict:
        try:
            summary = obj.integrity_summary
        except IntegrityLogError:
            return {'valid': False}
        return {
            'valid': True,
            'warning_count': summary.warning_count,
            'total_defocus_count': summary.total_defocus_count,
            'terminated': summary.terminated,
            'total_time_away_seconds': summary.total_time_away_seconds,
        }


class GradeEditSerializer(serializers.Serializer):
    index = serializers.IntegerField(min_value=0)
    score = serializers.FloatField(required=False, allow_null=True, default=None)
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    override = serializers.BooleanField(required=False, allow_null=True, default=None)

    def validate(self, data):
        if data['score'] is None and data['comment'] is None and data['override'] is None:
            raise serializers.ValidationError("Provide at least one of score, comment or override.")
        return data


class GradingRequestSerializer(serializers.Serializer):
    edits = GradeEditSerializer(many=True, required=False, default=list)
    preview = serializers.BooleanField(required=False, default=False)
