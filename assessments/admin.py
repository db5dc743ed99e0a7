from django.contrib import admin
from .models import Exam, Question, Submission, AuditLog


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = [
        'order', 'question_type', 'text', 'points', 'options',
        'correct_option_index', 'correct_boolean', 'correct_text'
    ]


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'status', 'duration_minutes', 'created_at']
    list_filter = ['status']
    search_fields = ['title', 'description']
    inlines = [QuestionInline]
    readonly_fields = ['created_at', 'updated_at', 'published_at']
    fieldsets = (
        (None, {'fields': ('title', 'description', 'status', 'duration_minutes')}),
        ('Metadata', {'fields': ('created_by', 'created_at', 'updated_at', 'published_at'), 'classes': ('collapse',)}),
    )


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    list_display = [
        'candidate_name', 'exam', 'submitted_at', 'graded', 'total_score',
        'max_score', 'warning_count', 'terminated'
    ]
    list_filter = ['graded', 'terminated', 'exam']
    search_fields = ['candidate_name', 'candidate__username', 'exam__title']
    readonly_fields = [
        'exam', 'candidate', 'candidate_name', 'submitted_at', 'answers', 'integrity_log',
        'warning_count', 'total_defocus_count', 'terminated',
        'question_scores', 'question_comments', 'total_score', 'max_score', 'graded', 'graded_at'
    ]

    def has_add_permission(self, request):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'user', 'ip_address', 'created_at']
    list_filter = ['event_type']
    search_fields = ['description', 'user__username']
    readonly_fields = ['user', 'event_type', 'description', 'ip_address', 'metadata', 'created_at']
