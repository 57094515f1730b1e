from typing import Iterable, List, Optional

from music_guesser.models import GuessOutcome, Player, Track


def normalize(text: Optional[str]) -> str:
    return (text or '').lower().strip()


def score_guess(guesser: Player, track: Track, message: str) -> Optional[GuessOutcome]:
    """Credit a chat message against the current turn's track.

    The full normalized title (or artist) must appear somewhere in the
    normalized message. Each of title and artist is credited at most once
    per turn per player, 1 point each. Returns None when nothing new was
    credited.
    """
    guess = normalize(message)
    correct_title = normalize(track.title)
    correct_artist = normalize(track.artist)

    title_hit = False
    artist_hit = False
    if not guesser.correct_this_turn['title'] and correct_title and correct_title in guess:
        guesser.score += 1
        guesser.correct_this_turn['title'] = True
        title_hit = True
    if not guesser.correct_this_turn['artist'] and correct_artist and correct_artist in guess:
        guesser.score += 1
        guesser.correct_this_turn['artist'] = True
        artist_hit = True

    if not (title_hit or artist_hit):
        return None
    return GuessOutcome(guesser.nickname, title_hit, artist_hit, track)


def final_scores(players: Iterable[Player]) -> List[dict]:
    """Scores sorted descending; ties keep join order."""
    ordered = sorted(players, key=lambda p: p.join_order)
    ordered = sorted(ordered, key=lambda p: p.score, reverse=True)
    return [{'id': p.connection_id, 'nickname': p.nickname, 'score': p.score} for p in ordered]
