from typing import Dict, List, Sequence

from livequiz.entities import LeaderboardEntry, Player

SCORE_BUCKETS = ('0-100', '101-200', '201-300', '301-400', '400+')


def build_leaderboard(players: Sequence[Player]) -> List[LeaderboardEntry]:
    """Rank players by score, highest first, ranks 1..n in sorted order.

    Equal scores keep join order (earliest joiner first), then player id.
    """
    ordered = sorted(players, key=lambda p: (-p.score, p.joined_at, p.id))
    return [
        LeaderboardEntry(player_id=p.id, player_name=p.name, score=p.score, rank=i + 1)
        for i, p in enumerate(ordered)
    ]


def get_player_rank(entries: Sequence[LeaderboardEntry], player_id: str) -> int:
    """Rank of a player, 0 when absent."""
    for entry in entries:
        if entry.player_id == player_id:
            return entry.rank
    return 0


def get_top_players(entries: Sequence[LeaderboardEntry], count: int = 3) -> List[LeaderboardEntry]:
    return list(entries[:count])


def score_distribution(entries: Sequence[LeaderboardEntry]) -> Dict[str, list]:
    counts = [0] * len(SCORE_BUCKETS)
    for entry in entries:
        if entry.score <= 100:
            counts[0] += 1
        elif entry.score <= 200:
            counts[1] += 1
        elif entry.score <= 300:
            counts[2] += 1
        elif entry.score <= 400:
            counts[3] += 1
        else:
            counts[4] += 1
    return {'ranges': list(SCORE_BUCKETS), 'counts': counts}
