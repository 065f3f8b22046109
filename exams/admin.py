from django.contrib import admin

from .models import Exam, ExamQuestion, Question


class ExamQuestionInline(admin.TabularInline):
    model = ExamQuestion
    extra = 0
    raw_id_fields = ['question']


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'subject', 'status', 'duration', 'total_marks', 'created_by', 'created_at']
    list_filter = ['status', 'subject']
    search_fields = ['title', 'subject']
    inlines = [ExamQuestionInline]


admin.site.register(Question)
