import math

import pytest

from leaguebot.config import Config
from leaguebot.operations.rating_engine import RatingEntry, RatingUpdateEngine, competition_ranks
from leaguebot.utils.rating import Rating, RatingConverter


class TestRatingConverter:
    def test_default_prior_scores_1000(self):
        assert RatingConverter.score_of(25.0, 8.333) == 1000
    
    def test_known_values(self):
        # 1000 + 5.5 * 12 = 1066
        assert RatingConverter.score_of(30.5, 8.333) == 1066
        # Higher uncertainty lowers the score
        assert RatingConverter.score_of(25.0, 9.333) == 996
    
    def test_rounds_half_up(self):
        # raw 1000.5 rounds up, raw 999.6 rounds to 1000
        assert RatingConverter.score_of(25.0 + 0.5 / 12, 8.333) == 1001
        assert RatingConverter.score_of(25.0 - 0.4 / 12, 8.333) == 1000
    
    @pytest.mark.parametrize("target,sigma", [(1066, 8.333), (1050, 0.5), (873, 10.0), (1412, 4.21)])
    def test_mu_for_inverts_score_of(self, target, sigma):
        mu = RatingConverter.mu_for(target, sigma)
        assert abs(RatingConverter.score_of(mu, sigma) - target) <= 1
    
    @pytest.mark.parametrize("bad", [math.inf, -math.inf, math.nan])
    def test_rejects_non_finite(self, bad):
        with pytest.raises(ValueError):
            RatingConverter.score_of(bad, 8.333)
        with pytest.raises(ValueError):
            RatingConverter.mu_for(1000, bad)
    
    def test_minimum_change_lifts_small_win(self):
        before = Rating(mu=40.0, sigma=2.0)
        after = Rating(mu=40.01, sigma=1.99)
        adjusted = RatingConverter.adjust_for_minimum_change(before, after, 'w', 2)
        assert adjusted.sigma == after.sigma
        assert (RatingConverter.score_of_rating(adjusted)
                - RatingConverter.score_of_rating(before)) == 2
    
    def test_minimum_change_ignores_draws_and_large_moves(self):
        before = Rating(mu=25.0, sigma=8.333)
        after = Rating(mu=28.0, sigma=8.0)
        assert RatingConverter.adjust_for_minimum_change(before, after, 'w', 2) == after
        assert RatingConverter.adjust_for_minimum_change(before, before, 'd', 2) == before
    
    def test_format_change(self):
        assert RatingConverter.format_change(1000, 1003) == "+3"
        assert RatingConverter.format_change(1000, 998) == "-2"
        assert RatingConverter.format_change(1000, 1000) == "0"


class TestRatingUpdateEngine:
    @pytest.fixture
    def engine(self):
        return RatingUpdateEngine(min_sigma=0.5, max_sigma=10.0, min_rating_change=2, three_player_penalty=False)
    
    def test_winner_gains_loser_drops(self, engine):
        prior = Rating(mu=25.0, sigma=8.333)
        winner, loser = engine.rate([RatingEntry(prior, 'w'), RatingEntry(prior, 'l')])
        assert winner.mu > 25.0
        assert loser.mu < 25.0
        assert winner.sigma < 8.333
        assert loser.sigma < 8.333
    
    def test_order_is_preserved(self, engine):
        prior = Rating(mu=25.0, sigma=8.333)
        loser, winner = engine.rate([RatingEntry(prior, 'l'), RatingEntry(prior, 'w')])
        assert winner.mu > loser.mu
    
    def test_underdog_gains_more(self, engine):
        strong = Rating(mu=35.0, sigma=4.0)
        weak = Rating(mu=20.0, sigma=4.0)
        strong_wins = engine.rate([RatingEntry(strong, 'w'), RatingEntry(weak, 'l')])[0]
        weak_wins = engine.rate([RatingEntry(weak, 'w'), RatingEntry(strong, 'l')])[0]
        assert weak_wins.mu - weak.mu > strong_wins.mu - strong.mu
    
    def test_minimum_change_applied(self, engine):
        favourite = Rating(mu=50.0, sigma=1.0)
        underdog = Rating(mu=10.0, sigma=1.0)
        winner, loser = engine.rate([RatingEntry(favourite, 'w'), RatingEntry(underdog, 'l')])
        assert RatingConverter.score_of_rating(winner) - RatingConverter.score_of_rating(favourite) >= 2
        assert RatingConverter.score_of_rating(underdog) - RatingConverter.score_of_rating(loser) >= 2
    
    def test_sigma_clamped_to_minimum(self, engine):
        tight = Rating(mu=25.0, sigma=0.5)
        for after in engine.rate([RatingEntry(tight, 'w'), RatingEntry(tight, 'l')]):
            assert after.sigma >= 0.5
    
    def test_teams_share_outcome(self, engine):
        prior = Rating(mu=25.0, sigma=8.333)
        results = engine.rate([
            RatingEntry(prior, 'w', team='A'),
            RatingEntry(prior, 'l', team='B'),
            RatingEntry(prior, 'w', team='A'),
            RatingEntry(prior, 'l', team='B'),
        ])
        assert results[0].mu > 25.0 and results[2].mu > 25.0
        assert results[1].mu < 25.0 and results[3].mu < 25.0
    
    def test_needs_two_teams(self, engine):
        prior = Rating(mu=25.0, sigma=8.333)
        with pytest.raises(ValueError):
            engine.rate([RatingEntry(prior, 'w', team='A'), RatingEntry(prior, 'l', team='A')])
    
    def test_scores_rank_when_all_present(self, engine):
        prior = Rating(mu=25.0, sigma=8.333)
        first, second, third = engine.rate([
            RatingEntry(prior, 'w', score=30),
            RatingEntry(prior, 'l', score=20),
            RatingEntry(prior, 'l', score=10),
        ])
        assert first.mu > second.mu > third.mu
    
    def test_three_way_result_is_damped(self, engine):
        prior = Rating(mu=25.0, sigma=8.333)
        entries = [RatingEntry(prior, 'w'), RatingEntry(prior, 'l'), RatingEntry(prior, 'l')]
        damped_engine = RatingUpdateEngine(min_sigma=0.5, max_sigma=10.0, min_rating_change=2,
                                           three_player_penalty=True)
        
        plain = engine.rate(entries)
        damped = damped_engine.rate(entries)
        
        for full, scaled in zip(plain, damped):
            assert scaled.mu - 25.0 == pytest.approx((full.mu - 25.0) * Config.THREE_PLAYER_PENALTY_FACTOR)
            assert scaled.sigma == full.sigma
    
    def test_damping_only_for_three_sides(self):
        prior = Rating(mu=25.0, sigma=8.333)
        damped_engine = RatingUpdateEngine(min_sigma=0.5, max_sigma=10.0, min_rating_change=2,
                                           three_player_penalty=True)
        plain_engine = RatingUpdateEngine(min_sigma=0.5, max_sigma=10.0, min_rating_change=2,
                                          three_player_penalty=False)
        entries = [RatingEntry(prior, 'w'), RatingEntry(prior, 'l')]
        assert damped_engine.rate(entries) == plain_engine.rate(entries)


def test_competition_ranks_share_ties():
    assert competition_ranks([1, 3, 3, 2]) == [1, 3, 3, 2]
    assert competition_ranks([1, 1, 3]) == [1, 1, 3]
    assert competition_ranks([2, 2, 1]) == [2, 2, 1]
