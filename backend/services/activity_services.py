from models import ActivityLog, ActivityTypeEnum


class ActivityService:
    """Appends to the activity feed. Appends are best-effort and never undo an award."""

    @staticmethod
    def record(store, user_id, activity_type, activity_id, title, description=None, points_earned=0, details=None):
        entry = ActivityLog(
            user_id=user_id,
            activity_type=activity_type,
            activity_id=str(activity_id),
            title=title,
            description=description,
            points_earned=points_earned,
            details=details or {},
        )
        store.append_best_effort(entry)
        return entry

    @staticmethod
    def record_badges(store, student, badges):
        for badge in badges:
            ActivityService.record(
                store,
                student.id,
                ActivityTypeEnum.badge,
                badge.key,
                title=f"Badge earned: {badge.name}",
                description=badge.description,
                points_earned=0,
                details={"badgeId": badge.key, "badgeName": badge.name},
            )

    @staticmethod
    def recent(user_id, limit=20, activity_type=None):
        query = ActivityLog.query.filter_by(user_id=user_id)
        if activity_type:
            query = query.filter(ActivityLog.activity_type == ActivityTypeEnum(activity_type))
        return (
            query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
            .all()
        )
