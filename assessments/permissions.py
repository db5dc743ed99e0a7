from rest_framework import permissions


class IsGrader(permissions.BasePermission):
    message = "Only graders can perform this action."

    def has_permission(self, request, view):
        return is_grader(request.user)


class IsCandidateOrGrader(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        if is_grader(request.user):
            return True
        return getattr(obj, 'candidate_id', None) == request.user.id


def is_grader(user):
    return bool(user and user.is_authenticated and (user.is_staff or user.is_superuser))
