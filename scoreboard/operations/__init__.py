"""
Operations layer: ranking and merge logic composed over persisted stats.

- PointSystemResolver: rank -> place points lookup
- MatchRankingCalculator: single-match standings and MVP
- CumulativeRankingCalculator: standings after match k
- group_merge: combined-lobby keys, names and rosters
"""
