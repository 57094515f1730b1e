"""Track metadata: provider interface, reference parsing and title cleaning."""

import re
from typing import List, Optional, Tuple

from music_guesser.models import Track

SPOTIFY_ID_RE = re.compile(r'^[A-Za-z0-9]{22}$')
SPOTIFY_URI_RE = re.compile(r'^spotify:track:([A-Za-z0-9]{22})$')
SPOTIFY_URL_RE = re.compile(r'open\.spotify\.com/(?:intl-[a-z]{2}/)?track/([A-Za-z0-9]{22})')


class MetadataProvider:
    """Resolves submitted track references and searches the catalogue.

    Implementations raise ``ExternalDependencyError`` (code
    ``MetadataLookupFailed``) when a lookup fails.
    """

    def resolve(self, reference: str, access_token: Optional[str] = None) -> Track:
        raise NotImplementedError

    def search(self, query: str, access_token: str, limit: int = 10) -> List[Track]:
        raise NotImplementedError


def parse_track_reference(reference) -> Optional[str]:
    """Extract a Spotify track id from a URI, an open.spotify.com URL or a bare id."""
    if not isinstance(reference, str):
        return None
    reference = reference.strip()
    match = SPOTIFY_URI_RE.match(reference)
    if match:
        return match.group(1)
    match = SPOTIFY_URL_RE.search(reference)
    if match:
        return match.group(1)
    if SPOTIFY_ID_RE.match(reference):
        return reference
    return None


_NOISE = (
    r'Official (?:Music |Lyric )?Video|Official Audio|Lyrics?|Lyric Video|Audio|Visuali[sz]er|HD|HQ|4K|'
    r'Video|Explicit|Clean|Radio Edit|Extended Mix|Single Version|Album Version|'
    r'Remaster(?:ed)?(?: \d{4})?|\d{4} Remaster(?:ed)?|Acoustic(?: Version)?|Live(?: at [^)\]]*)?|Mono|Stereo'
)
NOISE_PATTERNS = [
    re.compile(r'\s*\((?:%s)\)' % _NOISE, re.I),
    re.compile(r'\s*\[(?:%s)\]' % _NOISE, re.I),
    re.compile(r'\s*[(\[](?:feat\.?|ft\.?|featuring)\s+[^)\]]*[)\]]', re.I),
    re.compile(r'\s*[(\[]prod\.?\s+[^)\]]*[)\]]', re.I),
    re.compile(r'\s+-\s+(?:%s)\s*$' % _NOISE, re.I),
    re.compile(r'\s+(?:feat\.?|ft\.?|featuring)\s+.*$', re.I),
    re.compile(r'\s*\|.*$'),
    re.compile(r'[©®™]'),
]
QUOTES_RE = re.compile(r'["“”]')


def clean_text(value: Optional[str]) -> str:
    text = (value or '').replace('–', '-').replace('—', '-').replace('’', "'").replace('‘', "'")
    text = re.sub(r'\s+', ' ', text).strip()
    original = text
    for pattern in NOISE_PATTERNS:
        text = pattern.sub('', text).strip()
    text = QUOTES_RE.sub('', text)
    text = re.sub(r'\s+', ' ', text).strip()
    # Never clean a title down to nothing
    return text or original


def split_title_artist(raw: str) -> Tuple[str, str]:
    """Split a combined ``"Title - Artist"`` string on the last separator."""
    cleaned = clean_text(raw)
    title, sep, artist = cleaned.rpartition(' - ')
    if not sep:
        title, artist = cleaned, ''
        lowered = title.lower()
        if ' by ' in lowered:
            at = lowered.index(' by ')
            title, artist = title[:at], title[at + 4:]
    artist = artist.strip()
    if artist.lower().startswith('by '):
        artist = artist[3:]
    return title.strip(), artist.strip()


def clean_song_details(title: Optional[str], artist: Optional[str]) -> Tuple[str, str]:
    """Normalize provider metadata so guesses match what players actually say."""
    clean_title = clean_text(title)
    clean_artist = clean_text(artist)
    if not clean_artist:
        return split_title_artist(clean_title)
    if clean_artist.lower().startswith('by '):
        clean_artist = clean_artist[3:].strip()
    return clean_title, clean_artist
