from django.contrib import admin

from .models import ExamAttempt, Grade, Result, StudentStats


class GradeInline(admin.TabularInline):
    model = Grade
    extra = 0
    readonly_fields = ['question', 'score', 'max_score', 'is_correct', 'outcome', 'grader', 'graded_at']


@admin.register(ExamAttempt)
class ExamAttemptAdmin(admin.ModelAdmin):
    list_display = ['id', 'exam', 'student', 'status', 'total_score', 'submitted_at', 'was_forced']
    list_filter = ['status', 'was_forced']
    search_fields = ['student__email', 'exam__title']
    readonly_fields = ['question_snapshot', 'version']
    inlines = [GradeInline]


admin.site.register(Result)
admin.site.register(StudentStats)
