import math
from dataclasses import dataclass

from leaguebot.constants import RatingConstants


@dataclass(frozen=True)
class Rating:
    """Gaussian skill estimate"""
    mu: float
    sigma: float


class RatingConverter:
    """Converts between the internal (mu, sigma) rating and the public score"""
    
    @staticmethod
    def _check_finite(**values: float):
        for name, value in values.items():
            if value is None or not math.isfinite(value):
                raise ValueError(f"{name} must be a finite number, got {value!r}")
    
    @staticmethod
    def score_of(mu: float, sigma: float) -> int:
        """
        Calculate the display score for a rating
        
        Args:
            mu: Rating mean
            sigma: Rating uncertainty
            
        Returns:
            Integer score, rounded half up
        """
        RatingConverter._check_finite(mu=mu, sigma=sigma)
        raw = (
            RatingConstants.BASE_SCORE
            + (mu - RatingConstants.MU_BASELINE) * RatingConstants.MU_SCALE
            - (sigma - RatingConstants.SIGMA_BASELINE) * RatingConstants.SIGMA_SCALE
        )
        return math.floor(raw + 0.5)
    
    @staticmethod
    def mu_for(target_score: float, sigma: float) -> float:
        """
        Solve for the mu that produces target_score at the given sigma
        
        Args:
            target_score: Desired display score
            sigma: Rating uncertainty the mu will be paired with
            
        Returns:
            The mu value; score_of(mu_for(x, s), s) is within 1 of x
        """
        RatingConverter._check_finite(target_score=target_score, sigma=sigma)
        return (
            (target_score - RatingConstants.BASE_SCORE
             + (sigma - RatingConstants.SIGMA_BASELINE) * RatingConstants.SIGMA_SCALE)
            / RatingConstants.MU_SCALE
            + RatingConstants.MU_BASELINE
        )
    
    @staticmethod
    def score_of_rating(rating: Rating) -> int:
        return RatingConverter.score_of(rating.mu, rating.sigma)
    
    @staticmethod
    def adjust_for_minimum_change(before: Rating, after: Rating, outcome: str,
                                  min_change: int) -> Rating:
        """
        Guarantee winners gain and losers drop at least min_change score points.
        
        The adjusted mu is solved at the already-updated sigma, so only the mean
        moves. Draws are returned unchanged.
        
        Args:
            before: Rating before the contest
            after: Rating produced by the model
            outcome: 'w', 'l' or 'd'
            min_change: Minimum absolute score movement
            
        Returns:
            The (possibly) adjusted rating
        """
        if min_change <= 0 or outcome == 'd':
            return after
        
        old_score = RatingConverter.score_of_rating(before)
        new_score = RatingConverter.score_of_rating(after)
        
        if outcome == 'w' and new_score - old_score < min_change:
            target = old_score + min_change
        elif outcome == 'l' and old_score - new_score < min_change:
            target = old_score - min_change
        else:
            return after
        
        return Rating(mu=RatingConverter.mu_for(target, after.sigma), sigma=after.sigma)
    
    @staticmethod
    def format_change(old_score: int, new_score: int) -> str:
        """Format a score change as '+3', '-2' or '0'"""
        delta = new_score - old_score
        if delta > 0:
            return f"+{delta}"
        return str(delta)
