"""Compatibility scoring for the RevealMatch service."""

from revealmatch.models.profile import CompatibilityAnswers

# Points awarded for each question both users answered identically
POINTS_PER_ANSWER = 25

ANSWER_FIELDS = ("smoker", "serious_relationship", "morning_person", "prefers_city")


def calculate_compatibility_score(a: CompatibilityAnswers, b: CompatibilityAnswers) -> int:
    """
    Score how well two sets of answers agree.

    Each of the four questions is worth 25 points when both users gave the
    same answer. A question that either user left unanswered scores nothing.

    Args:
        a (CompatibilityAnswers): Answers of the first user.
        b (CompatibilityAnswers): Answers of the second user.

    Returns:
        int: One of 0, 25, 50, 75 or 100.
    """
    score = 0
    for field in ANSWER_FIELDS:
        left = getattr(a, field)
        right = getattr(b, field)
        if left is not None and right is not None and left == right:
            score += POINTS_PER_ANSWER
    return score
