from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass
class NormalizedQuery:
    """
    Cleaned title/artist forms for one entity.

    `clean_title` and `all_artists` keep their display casing and are used to
    build catalog search queries. The canonical forms feed fingerprinting.
    """

    clean_title: str
    all_artists: list[str]
    canonical_title: str
    canonical_artists: list[str]


class Normalizer:
    """
    Deterministic text normalizer for song, album and artist strings.

    Two modes are provided: a light search-query cleanup that keeps the text
    readable, and an aggressive canonical form used as a matching key.
    """

    BRACKET_PATTERN = r"\s*[\(\[][^\)\]]*[\)\]]"
    FEAT_TAIL_PATTERN = r"\b(?:feat(?:uring)?|ft)\b[:.\s-]*.*$"
    SEPARATOR_PATTERN = r"\s*[-—–|:]\s*"
    TITLE_NOISE_PATTERN = (
        r"\b(?:official(?:\s+video)?|video|audio|lyrics?|remaster(?:ed)?|live|remix|mix|edit"
        r"|version|instrumental|karaoke|cover)\b"
    )

    # Bare "x" is deliberately absent so names like "Lexy" survive.
    ARTIST_SPLIT_PATTERN = r"\s*[,;&/×]\s*|\s+and\s+|\s+with\s+"

    SEARCH_NOISE_PATTERN = (
        r"[\(\[]\s*(?:official\s+(?:music\s+|lyric\s+)?video|official\s+audio|official"
        r"|lyric\s+video|lyrics|visuali[sz]er|audio|video|explicit|clean|4k|hd|hq)\s*[\)\]]"
    )
    SEARCH_BARE_NOISE_PATTERN = (
        r"\b(?:official\s+(?:music\s+|lyric\s+)?video|official\s+audio|lyric\s+video"
        r"|visuali[sz]er|explicit|4k)\b"
    )
    FORMAT_SUFFIX_PATTERN = r"\s*[-–—]\s*(?:ep|single|lp)\s*$"
    ALBUM_FORMAT_SUFFIX_PATTERN = r"-?\s*\b(?:single|ep|album)$"

    FEAT_PREFIX_PATTERN = r"^(?:feat(?:uring)?|ft|with)\b\.?\s*(.+)$"
    REMIX_SUFFIX_PATTERN = r"^(.+?)\s+(?:remix|edit|mix|rework|bootleg|flip)$"
    MARKETING_PATTERN = r"\b(?:official|video|audio|lyrics?|visuali[sz]er|4k|hd|explicit)\b"
    EDITION_METADATA_PATTERN = (
        r"\b(?:ep|lp|single|deluxe|remaster(?:ed)?|live|acoustic|instrumental|anniversary"
        r"|edition|version|expanded|bonus|explicit)\b"
    )

    # Words that mark a bracket group as release metadata rather than a name.
    METADATA_WORDS = {
        "acoustic",
        "album",
        "anniversary",
        "bonus",
        "clean",
        "club",
        "deluxe",
        "demo",
        "dub",
        "edit",
        "edition",
        "expanded",
        "explicit",
        "extended",
        "from",
        "instrumental",
        "live",
        "mix",
        "mono",
        "original",
        "radio",
        "remaster",
        "remastered",
        "remix",
        "short",
        "single",
        "soundtrack",
        "stereo",
        "track",
        "version",
    }

    def normalize_for_search(self, text: str) -> str:
        """
        Produce a readable query string for a catalog's full-text search.

        Strips featured-artist tails and marketing tags but keeps edition words
        such as "Remastered" or "Deluxe".
        """
        s = self._apply_unicode_whitespace(str(text or ""))
        s = re.sub(
            r"[\(\[]\s*(?:feat(?:uring)?|ft)\b[^\)\]]*[\)\]]", " ", s, flags=re.IGNORECASE
        )
        s = re.sub(r"\s+(?:feat(?:uring)?|ft)\b\.?\s.*$", "", s, flags=re.IGNORECASE)
        s = re.sub(self.SEARCH_NOISE_PATTERN, " ", s, flags=re.IGNORECASE)
        s = re.sub(self.SEARCH_BARE_NOISE_PATTERN, " ", s, flags=re.IGNORECASE)
        s = re.sub(self.FORMAT_SUFFIX_PATTERN, "", s, flags=re.IGNORECASE)
        s = s.replace("[", "(").replace("]", ")")
        s = re.sub(r"\(\s*\)", " ", s)
        return self._final_compaction(s)

    def normalize_title(self, title: str) -> str:
        """
        Canonical matching key for a title.

        Never returns an empty string for non-empty input.
        """
        original = str(title or "")
        t = original.lower()
        t = re.sub(self.BRACKET_PATTERN, " ", t)
        t = re.sub(self.FEAT_TAIL_PATTERN, " ", t, flags=re.IGNORECASE)
        t = re.sub(self.TITLE_NOISE_PATTERN, " ", t, flags=re.IGNORECASE)
        t = re.split(self.SEPARATOR_PATTERN, t)[0]
        t = self._strip_punctuation(self._strip_diacritics(t))
        t = self._final_compaction(t).lower()

        if not t:
            t = self._final_compaction(
                self._strip_punctuation(self._strip_diacritics(original.lower()))
            )
        if not t:
            t = self._final_compaction(original.lower())
        return t

    def normalize_artists(self, artists: Iterable[str] | None) -> list[str]:
        """Split, clean and deduplicate artist names, keeping first-seen order."""
        normalized: list[str] = []
        for raw in artists or []:
            if not raw:
                continue
            s = re.sub(self.BRACKET_PATTERN, " ", str(raw))
            for piece in re.split(self.ARTIST_SPLIT_PATTERN, s, flags=re.IGNORECASE):
                a = piece.lower()
                a = re.sub(self.FEAT_TAIL_PATTERN, " ", a, flags=re.IGNORECASE)
                a = self._final_compaction(self._strip_punctuation(self._strip_diacritics(a)))
                if a and a not in normalized:
                    normalized.append(a)
        return normalized

    def extract_all_artists_from_title(self, title: str) -> list[str]:
        """
        Find artist names embedded in a raw title.

        Looks at bracket groups ("feat. X", "X Remix", bare collaborator names)
        and at an "Artist - Title" split. Returned names are canonical.
        """
        title = str(title or "")
        found: list[str] = []

        for match in re.finditer(r"[\(\[]([^\)\]]*)[\)\]]", title):
            group = self._final_compaction(match.group(1))
            if not group:
                continue

            feat = re.match(self.FEAT_PREFIX_PATTERN, group, re.IGNORECASE)
            if feat:
                found.extend(self._split_names(feat.group(1)))
                continue

            remix = re.match(self.REMIX_SUFFIX_PATTERN, group, re.IGNORECASE)
            if remix:
                if not self._is_metadata(remix.group(1)):
                    found.extend(self._split_names(remix.group(1)))
                continue

            if self._is_metadata(group):
                continue
            found.extend(self._split_names(group))

        remainder = re.sub(self.BRACKET_PATTERN, " ", title)
        parts = re.split(r"\s+-\s+|\s*[—–|:]\s*", remainder, maxsplit=1)
        if len(parts) == 2 and parts[0].strip() and parts[1].strip():
            if not re.search(self.EDITION_METADATA_PATTERN, parts[1], re.IGNORECASE):
                found.extend(self._split_names(parts[0]))

        return self.normalize_artists(found)

    def normalize_song_data(self, title: str, artists: Iterable[str]) -> NormalizedQuery:
        """Clean a song's title/artists for querying and fingerprinting."""
        clean_title = re.sub(r"\s*\([^\)]*\)", "", str(title or ""))
        clean_title = re.sub(r"\s*\[[^\]]*\]", "", clean_title).strip()
        all_artists = self._collect_artists(title, artists)
        return NormalizedQuery(
            clean_title=clean_title,
            all_artists=all_artists,
            canonical_title=self.normalize_title(clean_title),
            canonical_artists=self.normalize_artists(all_artists),
        )

    def normalize_album_data(self, title: str, artists: Iterable[str]) -> NormalizedQuery:
        """Like `normalize_song_data`, also dropping a trailing single/EP/album marker."""
        clean_title = re.sub(r"\s*\([^\)]*\)", "", str(title or ""))
        clean_title = re.sub(r"\s*\[[^\]]*\]", "", clean_title)
        clean_title = re.sub(
            self.ALBUM_FORMAT_SUFFIX_PATTERN, "", clean_title, flags=re.IGNORECASE
        ).strip()
        all_artists = self._collect_artists(title, artists)
        return NormalizedQuery(
            clean_title=clean_title,
            all_artists=all_artists,
            canonical_title=self.normalize_title(clean_title),
            canonical_artists=self.normalize_artists(all_artists),
        )

    def _collect_artists(self, title: str | None, artists: Iterable[str]) -> list[str]:
        """Split joined artist strings and append featured artists from the title."""
        collected: list[str] = []
        for artist in artists or []:
            for name in re.split(r"[,&]\s*|\s+and\s+", str(artist), flags=re.IGNORECASE):
                name = name.strip()
                if name and name not in collected:
                    collected.append(name)

        feat = re.search(r"[\(\[]feat\.?\s+([^\)\]]*)[\)\]]", str(title or ""), re.IGNORECASE)
        if feat:
            for name in re.split(r"[,&]\s*|\s+and\s+", feat.group(1), flags=re.IGNORECASE):
                name = name.strip()
                if name and name not in collected:
                    collected.append(name)
        return collected

    def _split_names(self, s: str) -> list[str]:
        return [p.strip() for p in re.split(self.ARTIST_SPLIT_PATTERN, s, flags=re.IGNORECASE) if p.strip()]

    def _is_metadata(self, s: str) -> bool:
        """True when a bracket group is release metadata rather than a name."""
        if re.search(self.MARKETING_PATTERN, s, re.IGNORECASE):
            return True
        words = re.findall(r"[^\W_]+", s.lower())
        if not words:
            return True
        if words[0] in self.METADATA_WORDS:
            return True
        return all(w in self.METADATA_WORDS or w.isdigit() for w in words)

    def _apply_unicode_whitespace(self, s: str) -> str:
        """Normalize to NFC and collapse whitespace."""
        s = unicodedata.normalize("NFC", s)
        s = s.replace("\u00a0", " ")
        s = re.sub(r"[\u200b-\u200d\ufeff]", "", s)
        s = re.sub(r"\s+", " ", s)
        return s.strip()

    def _strip_diacritics(self, s: str) -> str:
        """Remove diacritics for matching."""
        nfkd = unicodedata.normalize("NFKD", s)
        return "".join(c for c in nfkd if unicodedata.category(c) != "Mn")

    def _strip_punctuation(self, s: str) -> str:
        """Replace everything except letters, digits and whitespace with a space."""
        return re.sub(r"[^\w\s]|_", " ", s)

    def _final_compaction(self, s: str) -> str:
        """Collapse runs of whitespace."""
        return re.sub(r"\s+", " ", s).strip()


_default = Normalizer()

normalize_for_search = _default.normalize_for_search
normalize_title = _default.normalize_title
normalize_artists = _default.normalize_artists
extract_all_artists_from_title = _default.extract_all_artists_from_title
normalize_song_data = _default.normalize_song_data
normalize_album_data = _default.normalize_album_data


## Tests


def test_strip_diacritics():
    norm = Normalizer()
    assert norm._strip_diacritics("café") == "cafe"
    assert norm._strip_diacritics("Björk") == "Bjork"


def test_strip_punctuation_keeps_unicode_letters():
    norm = Normalizer()
    assert norm._final_compaction(norm._strip_punctuation("日本語!? song_2")) == "日本語 song 2"


def test_is_metadata():
    norm = Normalizer()
    assert norm._is_metadata("Remastered 2009")
    assert norm._is_metadata("Radio")
    assert norm._is_metadata("Official Video")
    assert not norm._is_metadata("Dua Lipa")
