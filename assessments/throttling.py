from rest_framework.throttling import UserRateThrottle


class SubmissionRateThrottle(UserRateThrottle):
    """Strict rate limit for exam submissions to prevent abuse."""
    scope = 'submission'


class GradingRateThrottle(UserRateThrottle):
    """Burst protection for grade saves."""
    scope = 'grading'
