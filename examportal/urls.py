from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & Profile ---
    path('api/', include('users.urls')),

    # --- Platform settings & audit trail (Admin) ---
    path('api/', include('cores.urls')),

    # --- Exams & Question Bank ---
    path('api/', include('exams.urls')),

    # --- Attempts, Grading, Results ---
    path('api/', include('assessments.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
