from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .api.views import DashboardView, ExamViewSet, SubmissionViewSet

# Router for ViewSets
router = DefaultRouter()
router.register(r'exams', ExamViewSet, basename='exam')
router.register(r'submissions', SubmissionViewSet, basename='submission')

urlpatterns = [
    path('dashboard/', DashboardView.as_view(), name='dashboard'),
    path('', include(router.urls)),
]
