"""
API Views for the proctored assessment engine.
Provides endpoints for exams, candidate submissions and grading.
"""
import logging

from django.db.models import Count, OuterRef, Q, Subquery, Sum
from django.http import HttpResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema

from assessments.grading import GradingSessionController, NotFound, PersistenceFailure, SubmissionPayload
from assessments.models import AuditLog, Exam, Question, Submission
from assessments.permissions import IsCandidateOrGrader, IsGrader, is_grader
from assessments.services import DatabaseQuestionSetStore, DatabaseSubmissionStore, ExportService
from assessments.throttling import GradingRateThrottle, SubmissionRateThrottle
from .serializers import (
    ExamDetailSerializer, ExamListSerializer, GradingRequestSerializer,
    SubmissionCreateSerializer, SubmissionDetailSerializer, SubmissionListSerializer,
)

logger = logging.getLogger(__name__)


# =============================================================================
# EXAMS
# =============================================================================

@extend_schema(tags=['Exams'])
class ExamViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read access to exams and their question sets for graders.
    Exams are authored through the Django admin.
    """
    permission_classes = [IsAuthenticated, IsGrader]
    filterset_fields = ['status']
    search_fields = ['title', 'description']
    ordering_fields = ['created_at', 'title']

    def get_queryset(self):
        points = Question.objects.filter(exam=OuterRef('pk')).order_by().values('exam').annotate(
            total=Sum('points')
        ).values('total')
        return Exam.objects.annotate(
            question_count=Count('questions', distinct=True),
            pending_count=Count('submissions', filter=Q(submissions__graded=False), distinct=True),
            total_points=Subquery(points),
        ).order_by('-created_at').prefetch_related('questions')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ExamDetailSerializer
        return ExamListSerializer

    @extend_schema(
        summary="List exam submissions",
        parameters=[
            OpenApiParameter(name='graded', type=bool, location='query', required=False),
        ],
        responses={200: SubmissionListSerializer(many=True)}
    )
    @action(detail=True, methods=['get'])
    def submissions(self, request, pk=None):
        exam = self.get_object()
        submissions = exam.submissions.select_related('exam', 'candidate')
        graded = request.query_params.get('graded')
        if graded is not None:
            submissions = submissions.filter(graded=graded.lower() == 'true')
        return Response(SubmissionListSerializer(submissions, many=True).data)

    @extend_schema(
        summary="Export results as CSV",
        tags=['Export'],
        parameters=[
            OpenApiParameter(name='detailed', type=bool, location='query', required=False,
                             description='Include per-question scores and comments'),
        ],
        responses={200: bytes}
    )
    @action(detail=True, methods=['get'])
    def export(self, request, pk=None):
        exam = self.get_object()
        submissions = exam.submissions.select_related('candidate').order_by('submitted_at')
        if request.query_params.get('detailed', '').lower() == 'true':
            content = ExportService.export_detailed_results(exam, submissions)
            filename = f"exam_{exam.id}_detailed.csv"
        else:
            content = ExportService.export_exam_results(exam, submissions)
            filename = f"exam_{exam.id}_results.csv"

        response = HttpResponse(content, content_type='text/csv')
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        return response


# =============================================================================
# SUBMISSIONS & GRADING
# =============================================================================

def _grading_payload(controller, submission):
    snapshot = controller.snapshot()
    questions = []
    for index, question in enumerate(controller.questions):
        questions.append({
            'index': index,
            'question_type': question.question_type.value,
            'text': question.text,
            'points': question.points,
            'answer': controller.answers[index],
            'auto_gradable': snapshot.auto_gradable[index],
            'auto_score': snapshot.auto_scores[index],
            'score': snapshot.scores[index],
            'override': snapshot.overrides[index],
            'editable': controller.is_editable(index),
            'comment': snapshot.comments[index],
        })

    return {
        'submission_id': submission.id,
        'exam': submission.exam_id,
        'candidate_name': submission.candidate_name,
        'state': snapshot.state.value,
        'graded': submission.graded,
        'questions': questions,
        'total_score': snapshot.total_score,
        'max_score': snapshot.max_score,
        'percentage': snapshot.percentage,
        'zero_mark_questions': snapshot.zero_mark_questions,
        'integrity': SubmissionDetailSerializer().get_integrity(submission),
    }


@extend_schema(tags=['Submissions'])
class SubmissionViewSet(mixins.CreateModelMixin,
                        mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        viewsets.GenericViewSet):
    """
    Candidate submissions and their grading.

    Candidates create a submission once, at the end of an attempt, and can
    see their own. Graders see all of them and grade them.
    """
    filterset_fields = ['exam', 'graded', 'terminated']
    ordering_fields = ['submitted_at', 'graded_at', 'total_score']

    def get_permissions(self):
        if self.action in ('create', 'list'):
            return [IsAuthenticated()]
        if self.action == 'retrieve':
            return [IsAuthenticated(), IsCandidateOrGrader()]
        return [IsAuthenticated(), IsGrader()]

    def get_throttles(self):
        if self.action == 'create':
            return [SubmissionRateThrottle()]
        if self.action == 'grade':
            return [GradingRateThrottle()]
        return super().get_throttles()

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Submission.objects.none()
        queryset = Submission.objects.select_related('exam', 'candidate')
        if not is_grader(self.request.user):
            queryset = queryset.filter(candidate=self.request.user)
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return SubmissionListSerializer
        if self.action == 'create':
            return SubmissionCreateSerializer
        return SubmissionDetailSerializer

    @extend_schema(
        summary="Submit an exam attempt",
        description="""
Store a finished attempt: the answers (one entry per question, in order) and
the integrity log recorded by the focus monitor.

Warning and defocus counters and the terminated flag are derived from the
log; a log the monitor could not have produced is rejected.
""",
        request=SubmissionCreateSerializer,
        responses={201: SubmissionListSerializer},
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "exam": 1,
                    "candidate_name": "Ada",
                    "answers": [2, "true", " Paris ", "An essay..."],
                    "integrity_log": [
                        {"kind": "blur", "timestamp": "2026-05-01T10:00:00Z", "warning_number": 1},
                        {"kind": "focus", "timestamp": "2026-05-01T10:00:12Z", "time_away_seconds": 12}
                    ]
                },
                request_only=True
            )
        ]
    )
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        exam = data['exam']
        summary = data['summary']

        payload = SubmissionPayload(
            answers=data['answers'],
            integrity_log=data['integrity_log'],
            warning_count=summary.warning_count,
            total_defocus_count=summary.total_defocus_count,
            terminated=summary.terminated,
            candidate_name=data['candidate_name'] or request.user.get_full_name() or request.user.username,
        )
        try:
            submission_id = DatabaseSubmissionStore().create(exam.id, payload, candidate=request.user)
        except PersistenceFailure as e:
            return Response({'detail': str(e), 'retryable': True}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        submission = Submission.objects.select_related('exam').get(pk=submission_id)

        AuditLog.log(
            event_type=AuditLog.EventType.EXAM_SUBMIT,
            description=f"Submitted: {exam.title}",
            request=request,
            metadata={
                'exam_id': exam.id,
                'submission_id': submission.id,
                'warning_count': submission.warning_count,
            }
        )
        if submission.terminated:
            AuditLog.log(
                event_type=AuditLog.EventType.EXAM_TERMINATED,
                description=f"Terminated for leaving the exam window: {exam.title}",
                request=request,
                metadata={'exam_id': exam.id, 'submission_id': submission.id}
            )

        return Response(SubmissionListSerializer(submission).data, status=status.HTTP_201_CREATED)

    def _open_controller(self, pk):
        return GradingSessionController.open(
            pk, DatabaseSubmissionStore(), DatabaseQuestionSetStore()
        )

    @extend_schema(summary="Get grading state", tags=['Grading'])
    @action(detail=True, methods=['get'])
    def grading(self, request, pk=None):
        submission = self.get_object()
        try:
            controller = self._open_controller(submission.pk)
        except NotFound as e:
            return Response({'detail': str(e)}, status=status.HTTP_404_NOT_FOUND)
        return Response(_grading_payload(controller, submission))

    @extend_schema(
        summary="Grade a submission",
        description="""
Apply grader edits and save the grade record.

Each edit targets one question by index. Within an edit, `override` is applied
first, then `score`, then `comment`. Turning `override` off restores the
automatic score. Scores are clamped to the question's point range. Scores of
auto-gradable questions can only be changed while `override` is on.

With `preview` the edits are applied and the resulting state returned, but
nothing is saved.
""",
        request=GradingRequestSerializer,
        tags=['Grading'],
        examples=[
            OpenApiExample(
                'Request Example',
                value={"edits": [
                    {"index": 0, "override": True, "score": 1.5, "comment": "Partially right"},
                    {"index": 3, "score": 4}
                ]},
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'])
    def grade(self, request, pk=None):
        submission = self.get_object()
        serializer = GradingRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            controller = self._open_controller(submission.pk)
        except NotFound as e:
            return Response({'detail': str(e)}, status=status.HTTP_404_NOT_FOUND)

        errors = self._apply_edits(controller, serializer.validated_data['edits'])
        if errors:
            return Response({'edits': errors}, status=status.HTTP_400_BAD_REQUEST)

        if serializer.validated_data['preview']:
            return Response(_grading_payload(controller, submission))

        try:
            patch = controller.save()
        except PersistenceFailure as e:
            logger.warning(f"Grade save for submission {submission.id} failed: {e}")
            AuditLog.log(
                event_type=AuditLog.EventType.GRADE_SAVE_FAILED,
                description=f"Grade save failed for submission {submission.id}",
                request=request,
                metadata={'submission_id': submission.id, 'error': str(e)}
            )
            return Response(
                {'detail': 'Grades could not be saved. Please try again.', 'retryable': True},
                status=status.HTTP_503_SERVICE_UNAVAILABLE
            )

        if patch is None:
            return Response({'detail': str(controller.last_violation)}, status=status.HTTP_409_CONFLICT)

        AuditLog.log(
            event_type=AuditLog.EventType.GRADES_SAVED,
            description=f"Grades saved: {patch.total_score}/{patch.max_score}",
            request=request,
            metadata={
                'submission_id': submission.id,
                'overrides': [i for i, o in enumerate(controller.overrides) if o],
            }
        )

        submission.refresh_from_db()
        return Response(_grading_payload(controller, submission))

    def _apply_edits(self, controller, edits):
        """Apply edits in order. Returns a list of per-edit errors (empty on success)."""
        question_count = len(controller.questions)
        errors = []
        for position, edit in enumerate(edits):
            index = edit['index']
            if index >= question_count:
                errors.append({'position': position, 'detail': f"Question index {index} out of range."})
                continue
            if edit['override'] is not None:
                controller.set_override(index, edit['override'])
            if edit['score'] is not None:
                if not controller.is_editable(index):
                    errors.append({
                        'position': position,
                        'detail': f"Question {index} is auto-graded; enable override to change its score."
                    })
                    continue
                controller.set_score(index, edit['score'])
            if edit['comment'] is not None:
                controller.set_comment(index, edit['comment'])
        return errors


# =============================================================================
# DASHBOARD
# =============================================================================

@extend_schema(tags=['Dashboard'])
class DashboardView(APIView):
    """Grading queue overview."""
    permission_classes = [IsAuthenticated, IsGrader]

    @extend_schema(summary="Grading dashboard", responses={200: dict})
    def get(self, request):
        submissions = Submission.objects.select_related('exam')
        pending = submissions.filter(graded=False).order_by('submitted_at')

        return Response({
            'exams': Exam.objects.count(),
            'published_exams': Exam.objects.filter(status=Exam.Status.PUBLISHED).count(),
            'submissions': submissions.count(),
            'pending_count': pending.count(),
            'graded_count': submissions.filter(graded=True).count(),
            'terminated_count': submissions.filter(terminated=True).count(),
            'pending': SubmissionListSerializer(pending[:20], many=True).data,
        })
