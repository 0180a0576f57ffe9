from liehard.models import Room


def calculate_scores(room: Room) -> dict:
    """Apply scoring for the current round.

    +1 to each voter who picked the true story; +1 to the hot-seat player for
    each voter they fooled, plus a +2 bonus when nobody guessed right (an
    expired vote with no guesses at all still earns the bonus). Players who
    did not vote neither gain nor lose points.

    Must run exactly once per round; the state machine only calls it on the
    VOTING -> REVEAL transition.
    """
    author = room.hot_seat
    if author is None:
        return {}
    truth = author.is_truth

    correct_voters = []
    fooled = 0
    for voter in room.voters:
        if voter.id not in room.votes:
            continue
        if room.votes[voter.id] == truth:
            voter.score += 1
            correct_voters.append(voter.id)
        else:
            fooled += 1

    awarded = fooled
    bonus = 0
    if not correct_voters and room.voters:
        bonus = 2
    author.score += awarded + bonus

    summary = {
        'round': int(room.current_round or 0),
        'playerId': author.id,
        'truthIndex': truth,
        'votes': {pid: idx for pid, idx in room.votes.items() if pid != author.id},
        'correctVoters': correct_voters,
        'fooledCount': fooled,
        'authorPointsAwarded': awarded + bonus,
        'bonus': bonus,
    }
    room.round_history.append(summary)
    return summary
