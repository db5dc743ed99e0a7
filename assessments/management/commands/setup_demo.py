"""
Management command to set up demo data for the grading engine.
Creates a grader, a candidate and one published exam covering every question type.
"""
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from django.utils import timezone
from rest_framework.authtoken.models import Token
from assessments.models import Exam, Question


class Command(BaseCommand):
    help = 'Set up demo data for testing'

    def _user(self, username, password, **defaults):
        user, created = User.objects.get_or_create(username=username, defaults=defaults)
        if created:
            user.set_password(password)
            user.save()
            self.stdout.write(self.style.SUCCESS(f'Created {username}: {username} / {password}'))
        else:
            self.stdout.write(f'  {username} already exists')
        token, _ = Token.objects.get_or_create(user=user)
        return user, token

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE('\nSetting up demo data...\n'))

        grader, grader_token = self._user(
            'grader', 'grader123', email='grader@example.com', is_staff=True
        )
        candidate, candidate_token = self._user(
            'candidate', 'candidate123', email='candidate@example.com'
        )

        exam, created = Exam.objects.get_or_create(
            title='Python Basics Quiz',
            defaults={
                'description': 'Test your Python knowledge with this quiz',
                'duration_minutes': 30,
                'status': Exam.Status.PUBLISHED,
                'published_at': timezone.now(),
                'created_by': grader,
            }
        )

        if created:
            Question.objects.create(
                exam=exam,
                question_type=Question.QuestionType.SINGLE_CHOICE,
                text='What is the output of print(type([]))?',
                points=2,
                order=1,
                options=["<class 'list'>", "<class 'tuple'>", "<class 'dict'>", "<class 'set'>"],
                correct_option_index=0,
            )
            Question.objects.create(
                exam=exam,
                question_type=Question.QuestionType.BOOLEAN,
                text='Python is a statically typed programming language.',
                points=1,
                order=2,
                correct_boolean=False,
            )
            Question.objects.create(
                exam=exam,
                question_type=Question.QuestionType.SHORT_TEXT,
                text='Which keyword defines a function?',
                points=2,
                order=3,
                correct_text='def',
            )
            Question.objects.create(
                exam=exam,
                question_type=Question.QuestionType.FREE_TEXT,
                text='Compare and contrast Python lists and tuples. Include examples.',
                points=5,
                order=4,
            )
            self.stdout.write(self.style.SUCCESS(f'Exam: {exam.title} with 4 questions'))
        else:
            self.stdout.write(f'  Exam already exists: {exam.title}')

        self.stdout.write('\nAPI tokens:')
        self.stdout.write(f'  grader:    {grader_token.key}')
        self.stdout.write(f'  candidate: {candidate_token.key}')
