from datetime import datetime
from flask import current_app

from models import Badge, UserBadge
from utils.constants import BADGE_RULES


def _stat(student, name):
    return getattr(student, name, 0) or 0


class BadgeService:

    @staticmethod
    def awardable_badges(student, owned=None):
        """Catalog keys whose threshold the student meets and does not own yet.

        Every rule is checked on every call since one action can cross several
        thresholds at once.
        """
        if owned is None:
            owned = student.badge_keys()
        return [
            key for key, rule in BADGE_RULES.items()
            if key not in owned and _stat(student, rule["stat"]) >= rule["threshold"]
        ]

    @staticmethod
    def get_or_create_badge(store, badge_key):
        rule = BADGE_RULES.get(badge_key)
        if not rule:
            raise ValueError(f"Badge '{badge_key}' not defined in BADGE_RULES")

        badge = Badge.query.filter_by(key=badge_key).first()
        if badge:
            return badge
        badge = Badge(
            key=badge_key,
            name=rule["name"],
            description=rule["description"],
            icon=rule["icon"],
        )
        if store.append_best_effort(badge):
            return badge
        # Lost a creation race, or None if the insert itself failed.
        return Badge.query.filter_by(key=badge_key).first()

    @staticmethod
    def grant_badges(store, student):
        """Award every newly-earned badge to ``student``. Returns the Badge rows granted."""
        granted = []
        for badge_key in BadgeService.awardable_badges(student):
            badge = BadgeService.get_or_create_badge(store, badge_key)
            if badge is None:
                current_app.logger.warning("Badge %s unavailable; not awarded to student %s", badge_key, student.id)
                continue
            user_badge = UserBadge(user_id=student.id, badge_id=badge.id, awarded_at=datetime.utcnow())
            # The (user, badge) unique constraint makes a concurrent grant a no-op.
            if store.append_best_effort(user_badge):
                granted.append(badge)
                current_app.logger.info("Badge %s awarded to student %s", badge_key, student.id)
        return granted

    @staticmethod
    def badge_progress(student):
        """Return a student's progress toward each catalog badge."""
        owned = student.badge_keys()
        progress = {}
        for key, rule in BADGE_RULES.items():
            current = _stat(student, rule["stat"])
            progress[key] = {
                "name": rule["name"],
                "current": current,
                "target": rule["threshold"],
                "completed": key in owned,
            }
        return progress
