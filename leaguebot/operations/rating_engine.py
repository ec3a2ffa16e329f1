from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from openskill.models import PlackettLuce

from leaguebot.config import Config
from leaguebot.constants import RatingConstants
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating import Rating, RatingConverter

logger = setup_logger(__name__)

OUTCOME_RANKS = {
    'w': RatingConstants.WIN_RANK,
    'd': RatingConstants.DRAW_RANK,
    'l': RatingConstants.LOSS_RANK,
}


@dataclass(frozen=True)
class RatingEntry:
    """One participant's input to a rating update"""
    rating: Rating
    outcome: str  # 'w', 'l' or 'd'
    team: Optional[str] = None
    score: Optional[float] = None


def competition_ranks(keys: Sequence[float]) -> List[int]:
    """
    Standard competition ranking ("1224") of ascending keys.
    
    Equal keys share a rank and the next distinct key skips the shared places.
    """
    order = sorted(range(len(keys)), key=lambda i: keys[i])
    ranks = [0] * len(keys)
    for position, index in enumerate(order):
        if position > 0 and keys[index] == keys[order[position - 1]]:
            ranks[index] = ranks[order[position - 1]]
        else:
            ranks[index] = position + 1
    return ranks


class RatingUpdateEngine:
    """Wraps the openskill Plackett-Luce model for contest rating updates"""
    
    def __init__(self, min_sigma: float = None, max_sigma: float = None,
                 min_rating_change: int = None, three_player_penalty: bool = None):
        self.min_sigma = Config.MIN_SIGMA if min_sigma is None else min_sigma
        self.max_sigma = Config.MAX_SIGMA if max_sigma is None else max_sigma
        self.min_rating_change = Config.MIN_RATING_CHANGE if min_rating_change is None else min_rating_change
        self.three_player_penalty = (Config.THREE_PLAYER_PENALTY if three_player_penalty is None
                                     else three_player_penalty)
        self.model = PlackettLuce(mu=Config.DEFAULT_MU, sigma=Config.DEFAULT_SIGMA)
    
    def default_rating(self) -> Rating:
        return Rating(mu=Config.DEFAULT_MU, sigma=Config.DEFAULT_SIGMA)
    
    def _group_teams(self, entries: Sequence[RatingEntry]) -> List[List[int]]:
        """Group entry indexes into teams, keeping first-seen order"""
        teams: List[List[int]] = []
        team_index: Dict[str, int] = {}
        for index, entry in enumerate(entries):
            if entry.team is None:
                teams.append([index])
                continue
            if entry.team not in team_index:
                team_index[entry.team] = len(teams)
                teams.append([])
            teams[team_index[entry.team]].append(index)
        return teams
    
    def _team_ranks(self, entries: Sequence[RatingEntry], teams: List[List[int]]) -> List[int]:
        if all(entry.score is not None for entry in entries):
            # Higher score places better, so rank on the negated team total
            keys = [-sum(entries[i].score for i in team) for team in teams]
        else:
            keys = [min(OUTCOME_RANKS[entries[i].outcome] for i in team) for team in teams]
        return competition_ranks(keys)
    
    def _penalize(self, mu: float) -> float:
        """Scale the distance from the prior mean for three-way results"""
        return Config.DEFAULT_MU + (mu - Config.DEFAULT_MU) * Config.THREE_PLAYER_PENALTY_FACTOR
    
    def rate(self, entries: Sequence[RatingEntry]) -> List[Rating]:
        """
        Compute post-contest ratings for every entry
        
        Args:
            entries: Participants with current rating and outcome; at least two
                teams are required, callers validate winner/loser composition
            
        Returns:
            One updated Rating per entry, in input order
        """
        for entry in entries:
            if entry.outcome not in OUTCOME_RANKS:
                raise ValueError(f"Unknown outcome {entry.outcome!r}")
        
        teams = self._group_teams(entries)
        if len(teams) < 2:
            raise ValueError("A rating update needs at least two opposing teams")
        
        ranks = self._team_ranks(entries, teams)
        model_teams = [
            [self.model.rating(mu=entries[i].rating.mu, sigma=entries[i].rating.sigma) for i in team]
            for team in teams
        ]
        rated = self.model.rate(model_teams, ranks=ranks)
        penalized = self.three_player_penalty and len(teams) == 3
        
        results: List[Optional[Rating]] = [None] * len(entries)
        for team, rated_team in zip(teams, rated):
            for index, player in zip(team, rated_team):
                sigma = min(max(player.sigma, self.min_sigma), self.max_sigma)
                mu = self._penalize(player.mu) if penalized else player.mu
                after = Rating(mu=mu, sigma=sigma)
                results[index] = RatingConverter.adjust_for_minimum_change(
                    entries[index].rating, after, entries[index].outcome, self.min_rating_change
                )
        
        logger.debug(f"Rated {len(entries)} entries in {len(teams)} teams with ranks {ranks}")
        return results
