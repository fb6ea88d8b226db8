# modules/quiz_session/config.py


class QuizSessionDefaultConfig:
    """
    Default configuration for the Quiz Session module.
    The Flask config (QUIZ_* keys) overrides the runtime values.
    """

    # --- Question pool ---
    POOL_FETCH_LIMIT = 100
    EXAM_SECONDS_PER_QUESTION = 6 * 60

    # --- Live sessions ---
    SESSION_SWEEP_SECONDS = 30
    FINALIZED_RETENTION_SECONDS = 60 * 60

    # --- Score tiers (inclusive lower bounds, checked top-down) ---
    TIER_THRESHOLDS = (
        (90.0, 'excellent'),
        (70.0, 'good'),
        (50.0, 'needs improvement'),
    )
    TIER_FALLBACK = 'poor'

    TIER_DISPLAY = {
        'excellent': ('🎉', 'Congratulations! Excellent performance!'),
        'good': ('👏', 'Good job! Keep improving!'),
        'needs improvement': ('🤔', 'You can do better! Try again!'),
        'poor': ('📚', 'Not great this time... study a bit more and try again!'),
    }
