from datetime import datetime
from flask import current_app
from sqlalchemy import func

from models import Quiz, QuizQuestion, QuizSubmission, ActivityTypeEnum
from services.store import Store
from services.badge_services import BadgeService
from services.activity_services import ActivityService
from services.ledger_services import get_ledger
from services.challenge_services import load_student, load_school, parse_targeting, parse_window
from utils.errors import (
    NotFound,
    ExpiredOrInactive,
    Forbidden,
    AlreadySubmitted,
    InvalidAnswers,
    InvalidPayload,
)
from utils.helpers import round_half_up, percent, is_int


def score_answers(questions, answers, points):
    """Score ``answers`` (option indexes) against ``questions``.

    Missing trailing answers and ``None`` never match. Points are spread evenly
    across questions, so a partial score earns a proportional share.
    """
    total = len(questions)
    correct = sum(
        1 for i, question in enumerate(questions)
        if i < len(answers) and answers[i] is not None and answers[i] == question.correct_option
    )
    points_per_question = (points or 0) / total
    return {
        "total_questions": total,
        "correct_answers": correct,
        "points_earned": round_half_up(correct * points_per_question),
        "percentage": round_half_up(100 * correct / total),
    }


def validate_answers(answers):
    if not isinstance(answers, list):
        raise InvalidAnswers()
    for answer in answers:
        if answer is not None and not is_int(answer):
            raise InvalidAnswers("Each answer must be an option index or null")
    return answers


class QuizService:

    @staticmethod
    def _refresh_counts(store, quiz):
        count, average = (
            store.session.query(func.count(QuizSubmission.id), func.avg(QuizSubmission.score))
            .filter(QuizSubmission.quiz_id == quiz.id)
            .one()
        )
        quiz.completed_count = count
        quiz.total_participants = count
        quiz.average_score = round_half_up(float(average or 0))

    @staticmethod
    def submit_quiz(actor, quiz_id, answers, time_taken=None):
        """Score a student's one and only submission for a quiz and award its points."""
        store = Store()
        quiz = store.get(Quiz, quiz_id)
        if not quiz:
            raise NotFound("Quiz not found")
        if not quiz.is_open():
            raise ExpiredOrInactive("Quiz is inactive or has expired")
        validate_answers(answers)
        if not quiz.questions:
            raise InvalidAnswers("Quiz has no questions")
        if time_taken is not None and (not is_int(time_taken) or time_taken < 0):
            raise InvalidPayload("time_taken must be a non-negative whole number of seconds")

        student = load_student(store, actor)
        if student.school_id != quiz.school_id:
            raise Forbidden("Student is not enrolled in the issuing school")
        if QuizSubmission.query.filter_by(quiz_id=quiz.id, student_id=student.id).first():
            raise AlreadySubmitted()

        outcome = score_answers(quiz.questions, answers, quiz.points)
        passed = outcome["percentage"] >= (quiz.passing_score or 0)

        submission = QuizSubmission(
            quiz_id=quiz.id,
            student_id=student.id,
            answers=answers,
            score=outcome["points_earned"],
            percentage=outcome["percentage"],
            correct_answers=outcome["correct_answers"],
            time_taken=time_taken,
            submitted_at=datetime.utcnow(),
        )
        # The (quiz, student) unique constraint rejects a concurrent duplicate.
        if not store.add(submission):
            raise AlreadySubmitted()

        QuizService._refresh_counts(store, quiz)

        student = get_ledger().credit(store, student, outcome["points_earned"], "quizzes_taken")
        new_badges = BadgeService.grant_badges(store, student)

        ActivityService.record(
            store,
            student.id,
            ActivityTypeEnum.quiz,
            quiz.id,
            title=quiz.title,
            description=quiz.description,
            points_earned=outcome["points_earned"],
            details={
                "score": outcome["points_earned"],
                "percentage": outcome["percentage"],
                "totalQuestions": outcome["total_questions"],
                "correctAnswers": outcome["correct_answers"],
                "timeTaken": time_taken,
            },
        )
        ActivityService.record_badges(store, student, new_badges)

        result = {
            "score": outcome["points_earned"],
            "total_questions": outcome["total_questions"],
            "correct_answers": outcome["correct_answers"],
            "percentage": outcome["percentage"],
            "passed": passed,
            "points_earned": outcome["points_earned"],
            "total_points": student.eco_points,
            "quizzes_taken": student.quizzes_taken,
            "new_badges": [badge.to_dict() for badge in new_badges],
        }
        store.save()

        current_app.logger.info(
            "Student %s submitted quiz %s: %s%% (+%s pts)",
            student.id, quiz_id, outcome["percentage"], outcome["points_earned"],
        )
        return result

    @staticmethod
    def list_for_student(actor):
        store = Store()
        student = load_student(store, actor)
        now = datetime.utcnow()
        quizzes = (
            Quiz.query
            .filter(Quiz.school_id == student.school_id, Quiz.is_active.is_(True))
            .filter((Quiz.end_date.is_(None)) | (Quiz.end_date > now))
            .order_by(Quiz.created_at.desc())
            .all()
        )
        mine = {
            s.quiz_id: s
            for s in QuizSubmission.query.filter_by(student_id=student.id).all()
        }
        items = []
        for quiz in quizzes:
            if not quiz.targets_grade(student.grade):
                continue
            data = quiz.to_dict()
            submission = mine.get(quiz.id)
            data["submitted"] = submission is not None
            data["my_percentage"] = submission.percentage if submission else None
            items.append(data)
        return items

    @staticmethod
    def _parse_questions(raw):
        if not isinstance(raw, list) or not raw:
            raise InvalidPayload("A quiz needs at least one question")
        questions = []
        for position, item in enumerate(raw):
            if not isinstance(item, dict):
                raise InvalidPayload(f"Question {position + 1} must be an object")
            prompt = (item.get("prompt") or item.get("question") or "").strip()
            options = item.get("options")
            correct = item.get("correct_option", item.get("correctAnswer"))
            if not prompt:
                raise InvalidPayload(f"Question {position + 1} needs a prompt")
            if not isinstance(options, list) or len(options) < 2 or not all(isinstance(o, str) and o.strip() for o in options):
                raise InvalidPayload(f"Question {position + 1} needs at least two options")
            if not is_int(correct) or not 0 <= correct < len(options):
                raise InvalidPayload(f"Question {position + 1} has an invalid correct option")
            questions.append(QuizQuestion(
                position=position,
                prompt=prompt,
                options=options,
                correct_option=correct,
                explanation=item.get("explanation"),
            ))
        return questions

    @staticmethod
    def create_quiz(actor, data):
        store = Store()
        school = load_school(store, actor)
        data = data or {}

        title = (data.get("title") or "").strip()
        if not title:
            raise InvalidPayload("Quiz title is required")
        points = data.get("points", 10)
        if not is_int(points) or points < 0:
            raise InvalidPayload("points must be a non-negative integer")
        passing_score = data.get("passing_score", 60)
        if not is_int(passing_score) or not 0 <= passing_score <= 100:
            raise InvalidPayload("passing_score must be between 0 and 100")
        duration = data.get("duration")
        if duration is not None and (not is_int(duration) or duration <= 0):
            raise InvalidPayload("duration must be a positive number of minutes")
        questions = QuizService._parse_questions(data.get("questions"))
        target, grades = parse_targeting(data)
        start_date, end_date = parse_window(data)

        quiz = Quiz(
            title=title,
            description=data.get("description"),
            points=points,
            passing_score=passing_score,
            school_id=school.id,
            created_by=school.id,
            start_date=start_date,
            end_date=end_date,
            duration=duration,
            is_active=bool(data.get("is_active", True)),
            target_students=target,
            target_grades=grades,
            total_participants=0,
            completed_count=0,
            average_score=0,
        )
        quiz.questions = questions
        store.session.add(quiz)
        store.save()
        return quiz.to_dict(include_answers=True)

    @staticmethod
    def list_for_school(actor):
        store = Store()
        school = load_school(store, actor)
        quizzes = Quiz.query.filter_by(school_id=school.id).order_by(Quiz.created_at.desc()).all()
        return [q.to_dict(include_answers=True) for q in quizzes]

    @staticmethod
    def quiz_stats(actor, quiz_id):
        store = Store()
        school = load_school(store, actor)
        quiz = store.get(Quiz, quiz_id)
        if not quiz:
            raise NotFound("Quiz not found")
        if quiz.school_id != school.id:
            raise Forbidden("Quiz belongs to another school")

        submissions = quiz.submissions.order_by(QuizSubmission.submitted_at).all()
        passed = [s for s in submissions if s.percentage >= (quiz.passing_score or 0)]
        return {
            "quiz": quiz.to_dict(include_answers=True),
            "completed_count": len(submissions),
            "average_score": quiz.average_score or 0,
            "average_percentage": round_half_up(sum(s.percentage for s in submissions) / len(submissions)) if submissions else 0,
            "pass_rate": percent(len(passed), len(submissions)),
            "submissions": [s.to_dict() for s in submissions],
        }
