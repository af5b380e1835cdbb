
from datetime import datetime
import enum
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates

db = SQLAlchemy()


# Enums
class RoleEnum(enum.Enum):
    student = "student"
    school = "school"
    ngo = "ngo"
    admin = "admin"


class DifficultyEnum(enum.Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class TargetEnum(enum.Enum):
    all = "all"
    grade_specific = "grade-specific"


class ParticipationStatusEnum(enum.Enum):
    enrolled = "enrolled"
    in_progress = "in-progress"
    completed = "completed"


class ActivityTypeEnum(enum.Enum):
    challenge = "challenge"
    quiz = "quiz"
    badge = "badge"


def _iso(value):
    return value.isoformat() if value else None


# Core Models
class User(db.Model):
    """Base account. The concrete role is picked by the ``role`` column."""
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(RoleEnum), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __mapper_args__ = {"polymorphic_on": role}

    def __repr__(self):
        return f"<{type(self).__name__} {self.email}>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "created_at": _iso(self.created_at),
        }

    @validates("email")
    def validate_email(self, key, email):
        if "@" not in email:
            raise ValueError("Invalid email format.")
        return email.strip().lower()


class Student(User):
    eco_points = db.Column(db.Integer, default=0, index=True)
    challenges_completed = db.Column(db.Integer, default=0)
    quizzes_taken = db.Column(db.Integer, default=0)
    school_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)
    grade = db.Column(db.String(20), nullable=True)
    student_number = db.Column(db.String(50), nullable=True)

    badges = db.relationship("UserBadge", back_populates="user", lazy="dynamic", cascade="all, delete-orphan")

    __mapper_args__ = {"polymorphic_identity": RoleEnum.student}

    def badge_keys(self):
        return {user_badge.badge.key for user_badge in self.badges}

    def to_dict(self):
        data = super().to_dict()
        data.update({
            "eco_points": self.eco_points or 0,
            "challenges_completed": self.challenges_completed or 0,
            "quizzes_taken": self.quizzes_taken or 0,
            "school_id": self.school_id,
            "grade": self.grade,
            "student_number": self.student_number,
            "badges": [user_badge.to_dict() for user_badge in self.badges],
        })
        return data


class School(User):
    __mapper_args__ = {"polymorphic_identity": RoleEnum.school}

    def to_dict(self):
        data = super().to_dict()
        data["student_count"] = Student.query.filter_by(school_id=self.id).count()
        return data


class Ngo(User):
    organization = db.Column(db.String(255), nullable=True)

    __mapper_args__ = {"polymorphic_identity": RoleEnum.ngo}

    def to_dict(self):
        data = super().to_dict()
        data["organization"] = self.organization
        return data


class Admin(User):
    __mapper_args__ = {"polymorphic_identity": RoleEnum.admin}


class Challenge(db.Model):
    __tablename__ = "challenge"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    points = db.Column(db.Integer, default=10)
    difficulty = db.Column(db.Enum(DifficultyEnum), default=DifficultyEnum.easy)
    category = db.Column(db.String(100))
    school_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    start_date = db.Column(db.DateTime, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    target_students = db.Column(db.Enum(TargetEnum), default=TargetEnum.all)
    target_grades = db.Column(db.JSON, default=list)
    total_participants = db.Column(db.Integer, default=0)
    completed_count = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    participants = db.relationship("ChallengeParticipation", back_populates="challenge", lazy="dynamic", cascade="all, delete-orphan")

    def is_open(self, now=None):
        now = now or datetime.utcnow()
        return bool(self.is_active) and (self.end_date is None or self.end_date > now)

    def targets_grade(self, grade):
        if self.target_students != TargetEnum.grade_specific:
            return True
        return grade in (self.target_grades or [])

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'points': self.points,
            'difficulty': self.difficulty.value if self.difficulty else None,
            'category': self.category,
            'school_id': self.school_id,
            'created_by': self.created_by,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'is_active': self.is_active,
            'target_students': self.target_students.value if self.target_students else None,
            'target_grades': self.target_grades or [],
            'total_participants': self.total_participants,
            'completed_count': self.completed_count,
        }


class ChallengeParticipation(db.Model):
    __tablename__ = "challenge_participation"
    __table_args__ = (
        db.UniqueConstraint("challenge_id", "student_id", name="uq_participation_challenge_student"),
    )

    id = db.Column(db.Integer, primary_key=True)
    challenge_id = db.Column(db.Integer, db.ForeignKey("challenge.id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    status = db.Column(db.Enum(ParticipationStatusEnum), default=ParticipationStatusEnum.enrolled, nullable=False)
    enrolled_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    points_earned = db.Column(db.Integer, default=0)

    challenge = db.relationship("Challenge", back_populates="participants")
    student = db.relationship("Student")

    def to_dict(self):
        return {
            'id': self.id,
            'challenge_id': self.challenge_id,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'status': self.status.value,
            'enrolled_at': _iso(self.enrolled_at),
            'completed_at': _iso(self.completed_at),
            'points_earned': self.points_earned,
        }


class Quiz(db.Model):
    __tablename__ = "quiz"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    points = db.Column(db.Integer, default=10)
    passing_score = db.Column(db.Integer, default=60)
    school_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    start_date = db.Column(db.DateTime, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)
    duration = db.Column(db.Integer, nullable=True)  # minutes
    is_active = db.Column(db.Boolean, default=True)
    target_students = db.Column(db.Enum(TargetEnum), default=TargetEnum.all)
    target_grades = db.Column(db.JSON, default=list)
    total_participants = db.Column(db.Integer, default=0)
    completed_count = db.Column(db.Integer, default=0)
    average_score = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    questions = db.relationship("QuizQuestion", back_populates="quiz", order_by="QuizQuestion.position", cascade="all, delete-orphan")
    submissions = db.relationship("QuizSubmission", back_populates="quiz", lazy="dynamic", cascade="all, delete-orphan")

    def is_open(self, now=None):
        now = now or datetime.utcnow()
        return bool(self.is_active) and (self.end_date is None or self.end_date > now)

    def targets_grade(self, grade):
        if self.target_students != TargetEnum.grade_specific:
            return True
        return grade in (self.target_grades or [])

    def to_dict(self, include_answers=False):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'points': self.points,
            'passing_score': self.passing_score,
            'school_id': self.school_id,
            'created_by': self.created_by,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'duration': self.duration,
            'is_active': self.is_active,
            'target_students': self.target_students.value if self.target_students else None,
            'target_grades': self.target_grades or [],
            'questions': [q.to_dict() if include_answers else q.to_public_dict() for q in self.questions],
            'total_participants': self.total_participants,
            'completed_count': self.completed_count,
            'average_score': self.average_score,
        }


class QuizQuestion(db.Model):
    __tablename__ = "quiz_question"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quiz.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    prompt = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False)
    correct_option = db.Column(db.Integer, nullable=False)
    explanation = db.Column(db.Text)

    quiz = db.relationship("Quiz", back_populates="questions")

    def to_dict(self):
        return {
            'id': self.id,
            'prompt': self.prompt,
            'options': self.options,
            'correct_option': self.correct_option,
            'explanation': self.explanation,
        }

    def to_public_dict(self):
        """Return question data without revealing the correct option."""
        return {
            'id': self.id,
            'prompt': self.prompt,
            'options': self.options,
        }


class QuizSubmission(db.Model):
    __tablename__ = "quiz_submission"
    __table_args__ = (
        db.UniqueConstraint("quiz_id", "student_id", name="uq_submission_quiz_student"),
    )

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quiz.id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    answers = db.Column(db.JSON, nullable=False, default=list)
    score = db.Column(db.Integer, default=0)  # points earned
    percentage = db.Column(db.Integer, default=0)
    correct_answers = db.Column(db.Integer, default=0)
    time_taken = db.Column(db.Integer, nullable=True)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)

    quiz = db.relationship("Quiz", back_populates="submissions")
    student = db.relationship("Student")

    def to_dict(self):
        return {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'answers': self.answers,
            'score': self.score,
            'percentage': self.percentage,
            'correct_answers': self.correct_answers,
            'time_taken': self.time_taken,
            'submitted_at': _iso(self.submitted_at),
        }


class Badge(db.Model):
    __tablename__ = "badge"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    icon = db.Column(db.String(16))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    users = db.relationship("UserBadge", back_populates="badge", lazy="dynamic", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.key,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
        }


class UserBadge(db.Model):
    __tablename__ = "user_badge"
    __table_args__ = (
        db.UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    badge_id = db.Column(db.Integer, db.ForeignKey("badge.id"), nullable=False)
    awarded_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("Student", back_populates="badges")
    badge = db.relationship("Badge", back_populates="users")

    def to_dict(self):
        data = self.badge.to_dict() if self.badge else {}
        data['earned_at'] = _iso(self.awarded_at)
        return data


class ActivityLog(db.Model):
    """Append-only feed of point and badge events."""
    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("ix_activity_log_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    activity_type = db.Column(db.Enum(ActivityTypeEnum), nullable=False)
    activity_id = db.Column(db.String(100), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    points_earned = db.Column(db.Integer, default=0)
    details = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'activity_type': self.activity_type.value,
            'activity_id': self.activity_id,
            'title': self.title,
            'description': self.description,
            'points_earned': self.points_earned,
            'metadata': self.details or {},
            'created_at': _iso(self.created_at),
        }
