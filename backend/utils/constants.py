BADGE_RULES = {
    "first-steps": {
        "name": "First Steps",
        "description": "Earned your first 100 eco-points",
        "icon": "🌱",
        "stat": "eco_points",
        "threshold": 100,
    },
    "eco-warrior": {
        "name": "Eco Warrior",
        "description": "Reached 500 eco-points",
        "icon": "🛡️",
        "stat": "eco_points",
        "threshold": 500,
    },
    "green-champion": {
        "name": "Green Champion",
        "description": "Reached 1000 eco-points",
        "icon": "🏆",
        "stat": "eco_points",
        "threshold": 1000,
    },
    "environmental-leader": {
        "name": "Environmental Leader",
        "description": "Reached 2500 eco-points",
        "icon": "🌍",
        "stat": "eco_points",
        "threshold": 2500,
    },
    "challenge-starter": {
        "name": "Challenge Starter",
        "description": "Completed 5 challenges",
        "icon": "🎯",
        "stat": "challenges_completed",
        "threshold": 5,
    },
    "challenge-master": {
        "name": "Challenge Master",
        "description": "Completed 10 challenges",
        "icon": "🥇",
        "stat": "challenges_completed",
        "threshold": 10,
    },
    "knowledge-seeker": {
        "name": "Knowledge Seeker",
        "description": "Completed 5 quizzes",
        "icon": "📚",
        "stat": "quizzes_taken",
        "threshold": 5,
    },
    "quiz-master": {
        "name": "Quiz Master",
        "description": "Completed 10 quizzes",
        "icon": "🧠",
        "stat": "quizzes_taken",
        "threshold": 10,
    },
}

LEDGER_STRATEGIES = ("running_total", "derived")

RANK_SCOPES = ("global", "school")

# Admins are promoted by other admins, never created through sign-up.
SELF_REGISTER_ROLES = ("student", "school", "ngo")

MIN_PASSWORD_LENGTH = 6
