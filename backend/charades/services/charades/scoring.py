from charades import db
from charades.models import LobbyPlayer
from typing import List, Optional


def award_correct_guess(lobby_id: int, player_id) -> Optional[int]:
    """Give the guesser one point.

    The increment is done in SQL so two concurrent awards both land. Returns
    the new score, or None when the guesser is not a member of the lobby.
    """
    membership = LobbyPlayer.query.filter_by(lobby_id=lobby_id, player_id=int(player_id)).first()
    if not membership:
        return None
    LobbyPlayer.query.filter_by(id=membership.id).update(
        {LobbyPlayer.score: LobbyPlayer.score + 1}, synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(membership)
    return membership.score


def standings(lobby_id: int) -> List[dict]:
    """Memberships ordered for the results screen, best first."""
    rows = (
        LobbyPlayer.query.filter_by(lobby_id=lobby_id)
        .order_by(LobbyPlayer.score.desc(), LobbyPlayer.joined_at.asc(), LobbyPlayer.id.asc())
        .all()
    )
    return [dict(r.to_dict(), rank=i + 1) for i, r in enumerate(rows)]
