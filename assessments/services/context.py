from dataclasses import dataclass

from rest_framework.exceptions import NotAuthenticated, PermissionDenied


@dataclass(frozen=True)
class SessionContext:
    """
    The authenticated caller, passed explicitly into every domain operation
    instead of being read from a global.
    """

    user: object

    @classmethod
    def from_request(cls, request):
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            raise NotAuthenticated("Sign in to continue.")
        return cls(user=user)

    @property
    def user_id(self):
        return self.user.pk

    def require_student(self):
        if not self.user.is_student:
            raise PermissionDenied("Only students can take exams.")

    def require_teacher(self):
        if not self.user.is_teacher:
            raise PermissionDenied("Only teachers can perform this action.")

    def require_owner_of(self, exam):
        """Teacher who created the exam, or an admin."""
        self.require_teacher()
        if not exam.is_owned_by(self.user):
            raise PermissionDenied("You do not manage this exam.")

    def require_attempt_owner(self, attempt):
        if attempt.student_id != self.user.pk:
            raise PermissionDenied("This attempt belongs to another student.")

    def can_view_attempt(self, attempt):
        return attempt.student_id == self.user.pk or attempt.exam.is_owned_by(self.user)
