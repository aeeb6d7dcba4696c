import logging

from sqlalchemy.orm import Session

import config
from errors import NotFound, RemoteWriteFailed, ValidationFailed
from persistence import crud

logger = logging.getLogger(__name__)

RATEABLE_KINDS = ("hotel", "bus")


def parse_score(score) -> int:
    """Accept 1..5 as an int or a string of digits; anything else is rejected."""
    if isinstance(score, bool):
        raise ValidationFailed("Please enter a valid rating between 1 and 5.")
    if isinstance(score, str) and score.strip().isdigit():
        score = int(score.strip())
    if not isinstance(score, int) or not 1 <= score <= 5:
        raise ValidationFailed("Please enter a valid rating between 1 and 5.")
    return score


def cumulative_mean(rating: float, count: int, score: int) -> float:
    return (rating * count + score) / (count + 1)


def rate_listing(db: Session, kind: str, listing_id: str, score, max_attempts: int = None):
    """
    Fold one score into a listing's running mean and bump its rating_count.

    The write is conditional on the rating_count we read; if another rater got
    in first the row is re-read and the update re-applied on fresh values.
    """
    if kind not in RATEABLE_KINDS:
        raise ValidationFailed(f"{kind} listings cannot be rated")
    score = parse_score(score)
    attempts = max_attempts or config.RATING_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        row = crud.get_listing(db, kind, listing_id)
        if row is None:
            raise NotFound(f"{kind} {listing_id} not found")
        count = row.rating_count or 0
        new_rating = cumulative_mean(row.rating or 0.0, count, score)
        if crud.update_rating_if_unchanged(db, kind, listing_id, count, new_rating, count + 1):
            logger.info("Rated %s %s with %d -> %.2f (%d ratings)", kind, listing_id, score, new_rating, count + 1)
            return crud.model_to_pydantic(crud.get_listing(db, kind, listing_id))
        logger.warning("Rating of %s %s raced another update (attempt %d/%d)", kind, listing_id, attempt, attempts)

    raise RemoteWriteFailed(f"Could not rate {kind} {listing_id}: too many concurrent updates")
