"""
Export Service for generating CSV reports of grade records.
"""
import csv
import io


class ExportService:
    @staticmethod
    def export_exam_results(exam, submissions):
        """One row per submission with totals and integrity counters."""
        output = io.StringIO()
        writer = csv.writer(output)

        writer.writerow([
            'Submission ID', 'Candidate', 'Submitted At', 'Graded', 'Graded At',
            'Total Score', 'Max Score', 'Percentage',
            'Warnings', 'Defocus Count', 'Terminated'
        ])

        for sub in submissions:
            writer.writerow([
                sub.id,
                sub.candidate_name or (sub.candidate.username if sub.candidate else ''),
                sub.submitted_at.strftime('%Y-%m-%d %H:%M:%S') if sub.submitted_at else '',
                'Yes' if sub.graded else 'No',
                sub.graded_at.strftime('%Y-%m-%d %H:%M:%S') if sub.graded_at else '',
                float(sub.total_score) if sub.total_score is not None else '',
                float(sub.max_score) if sub.max_score is not None else '',
                sub.percentage if sub.percentage is not None else '',
                sub.warning_count,
                sub.total_defocus_count,
                'Yes' if sub.terminated else 'No'
            ])

        return output.getvalue()

    @staticmethod
    def export_detailed_results(exam, submissions):
        """Per-question scores and comments for graded submissions."""
        output = io.StringIO()
        writer = csv.writer(output)

        questions = list(exam.questions.order_by('order', 'id'))

        header = ['Candidate', 'Total Score', 'Max Score']
        for number, q in enumerate(questions, start=1):
            header.append(f'Q{number} ({q.points}pts)')
            header.append(f'Q{number} Comment')
        writer.writerow(header)

        for sub in submissions:
            if not sub.graded:
                continue
            scores = list(sub.question_scores or [])
            comments = list(sub.question_comments or [])
            row = [
                sub.candidate_name or (sub.candidate.username if sub.candidate else ''),
                float(sub.total_score) if sub.total_score is not None else '',
                float(sub.max_score) if sub.max_score is not None else '',
            ]
            for index in range(len(questions)):
                row.append(scores[index] if index < len(scores) else '')
                row.append(comments[index] if index < len(comments) else '')
            writer.writerow(row)

        return output.getvalue()
