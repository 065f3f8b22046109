from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AttemptViewSet, PendingGradingListView, ResultListView, StudentStatsView, TeacherStatsView

router = DefaultRouter()
router.register(r'attempts', AttemptViewSet, basename='attempts')

urlpatterns = [
    # --- Grading Module (Teacher) ---
    path('grading/pending/', PendingGradingListView.as_view(), name='grading-pending'),
    path('teacher/stats/', TeacherStatsView.as_view(), name='teacher-stats'),

    # --- Student Dashboard ---
    path('results/', ResultListView.as_view(), name='results'),
    path('stats/me/', StudentStatsView.as_view(), name='student-stats'),

    path('', include(router.urls)),
]
