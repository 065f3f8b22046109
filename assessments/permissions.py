from rest_framework import permissions


class IsTeacherOrAdmin(permissions.BasePermission):
    """
    Allows access to Teachers and Admins.
    Strictly blocks Students.
    """
    def has_permission(self, request, view):
        # 1. User must be logged in
        if not request.user or not request.user.is_authenticated:
            return False

        # 2. Check Role
        return getattr(request.user, 'is_teacher', False)


class IsStudent(permissions.BasePermission):
    message = "Only students can take exams."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and getattr(request.user, 'is_student', False))
