import time

# Room phases
LOBBY = 'lobby'
IN_PROGRESS = 'in_progress'
ENDED = 'ended'


class Track:
    """Resolved song metadata as returned by a metadata provider."""

    def __init__(self, id, title, artist, preview_ref=None, album=None,
                 image_url=None, duration_ms=None, external_url=None):
        self.id = id
        self.title = title or ''
        self.artist = artist or ''
        self.preview_ref = preview_ref
        self.album = album
        self.image_url = image_url
        self.duration_ms = duration_ms
        self.external_url = external_url

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'artist': self.artist,
            'previewRef': self.preview_ref,
            'album': self.album,
            'imageUrl': self.image_url,
            'durationMs': self.duration_ms,
            'externalUrl': self.external_url,
        }

    def __repr__(self):
        return f'<Track {self.id} {self.title!r} by {self.artist!r}>'


class Player:
    def __init__(self, connection_id, nickname, join_order=0):
        self.connection_id = connection_id
        self.nickname = nickname
        self.join_order = join_order
        self.submitted_track = None
        self.has_uploaded = False
        self.score = 0
        self.correct_this_turn = {'title': False, 'artist': False}

    def clear_turn_credit(self):
        self.correct_this_turn = {'title': False, 'artist': False}

    def reset_for_new_game(self):
        self.submitted_track = None
        self.has_uploaded = False
        self.score = 0
        self.clear_turn_credit()

    def to_dict(self, host_id=None):
        return {
            'id': self.connection_id,
            'nickname': self.nickname,
            'hasUploaded': self.has_uploaded,
            'score': self.score,
            'isHost': self.connection_id == host_id,
        }


class GuessOutcome:
    def __init__(self, guesser_nickname, title_correct, artist_correct, track):
        self.guesser_nickname = guesser_nickname
        self.title_correct = title_correct
        self.artist_correct = artist_correct
        self.revealed_title = track.title
        self.revealed_artist = track.artist

    def to_dict(self):
        return {
            'titleCorrect': self.title_correct,
            'artistCorrect': self.artist_correct,
            'guesserNickname': self.guesser_nickname,
            'revealedTitle': self.revealed_title,
            'revealedArtist': self.revealed_artist,
        }


class ChatEvent:
    def __init__(self, sender_nickname, text, timestamp=None, guess_outcome=None):
        self.sender_nickname = sender_nickname
        self.text = text
        self.timestamp = timestamp if timestamp is not None else time.time()
        self.guess_outcome = guess_outcome

    def to_dict(self):
        return {
            'senderNickname': self.sender_nickname,
            'text': self.text,
            'timestamp': self.timestamp,
            'guessOutcome': self.guess_outcome.to_dict() if self.guess_outcome else None,
        }
