"""Content model: movies, episodes and episode collections.

The three variants form a closed tagged union discriminated by ``type``.
Identity (``==``) is the variant plus its identifying fields only:

* ``Movie`` identity: (title, year)
* ``Episode`` identity: (title, seasonNum, episodeNum)
* ``Collection`` identity: (title, episodes)

Owner (``swiperId``), release date, provenance (``initialType`` /
``initialSeason``) and any selected torrent never take part in equality.

Serialized form (``to_object`` / ``content_from_object``) matches the memory
document::

    {"type": "episode", "title": "Foo", "seasonNum": 1, "episodeNum": 2,
     "releaseDateStr": "2026-01-01T21:00:00", "swiperId": "cli"}
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_serializer,
    field_validator,
    model_validator,
)

from swiper.models.torrent import Torrent


class ContentBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    swiper_id: Optional[str] = Field(default=None, alias="swiperId")

    @field_validator("title")
    @classmethod
    def _require_title(cls, v: str) -> str:
        if not v:
            raise ValueError("Content must have a title.")
        return v

    def get_title(self) -> str:
        return self.title

    def get_type(self) -> str:
        return self.type  # type: ignore[attr-defined]

    def is_video(self) -> bool:
        return False

    def equals(self, other) -> bool:
        return self == other

    def to_object(self) -> dict:
        raise NotImplementedError


class VideoBase(ContentBase):
    """A single downloadable item; owns at most one selected torrent."""

    torrent: Optional[Torrent] = None

    def is_video(self) -> bool:
        return True

    def set_torrent(self, torrent: Optional[Torrent]) -> None:
        self.torrent = torrent

    def get_safe_title(self) -> str:
        """Title without the characters file systems reject."""
        return re.sub(r'[<>:"/\\|?*]', "", self.title).strip()

    def contains_any(self, content: "Content") -> bool:
        return self == content

    def contains_all(self, content: "Content") -> bool:
        return self == content

    def to_object(self) -> dict:
        exclude = {"torrent"} if self.torrent is None else None
        return self.model_dump(by_alias=True, exclude=exclude)


class Movie(VideoBase):
    type: Literal["movie"] = "movie"
    year: Optional[str] = None

    @field_validator("year", mode="before")
    @classmethod
    def _year_to_str(cls, v):
        return str(v) if v not in (None, "") else None

    def __eq__(self, other) -> bool:
        if not isinstance(other, ContentBase):
            return NotImplemented
        return isinstance(other, Movie) and self.title == other.title and self.year == other.year

    def get_search_term(self) -> str:
        clean = re.sub(r"[^a-zA-Z ]+", " ", self.title.replace("'", ""))
        clean = re.sub(r"\s+", " ", clean).strip()
        return f"{clean} {self.year}" if self.year else clean

    def get_desc(self) -> str:
        return f"{self.title} ({self.year})" if self.year else self.title

    def is_released(self, now: datetime | None = None) -> bool:
        return True


class Episode(VideoBase):
    type: Literal["episode"] = "episode"
    season_num: int = Field(alias="seasonNum")
    episode_num: int = Field(alias="episodeNum")
    release_date: Optional[datetime] = Field(default=None, alias="releaseDateStr")

    @field_validator("release_date", mode="before")
    @classmethod
    def _parse_release_date(cls, v):
        if v in ("", None):
            return None
        return v

    @field_serializer("release_date")
    def _dump_release_date(self, v: Optional[datetime]) -> str:
        return v.isoformat() if v else ""

    def __eq__(self, other) -> bool:
        if not isinstance(other, ContentBase):
            return NotImplemented
        return (
            isinstance(other, Episode)
            and self.title == other.title
            and self.season_num == other.season_num
            and self.episode_num == other.episode_num
        )

    def key(self) -> tuple[int, int]:
        return self.season_num, self.episode_num

    def is_earlier_than(self, other: "Episode") -> bool:
        if self.title != other.title:
            raise ValueError(f"Cannot order episodes of '{self.title}' and '{other.title}'")
        return self.key() < other.key()

    def is_released(self, now: datetime | None = None) -> bool:
        now = now or datetime.now()
        return self.release_date is not None and self.release_date <= now

    def get_search_term(self) -> str:
        clean = re.sub(r"[^a-zA-Z ]", "", self.title)
        return f"{clean} s{self.season_num:02d}e{self.episode_num:02d}"

    def get_desc(self) -> str:
        return f"{self.title} S{self.season_num:02d}E{self.episode_num:02d}"


def _sorted_unique(episodes: list[Episode]) -> list[Episode]:
    seen: set[tuple[int, int]] = set()
    unique: list[Episode] = []
    for ep in sorted(episodes, key=lambda e: e.key()):
        if ep.key() in seen:
            continue
        seen.add(ep.key())
        unique.append(ep)
    return unique


def _episodes_of(content: "Content") -> Optional[list[Episode]]:
    """Episode set of a TV item, or None for movies."""
    if isinstance(content, Collection):
        return content.episodes
    if isinstance(content, Episode):
        return [content]
    return None


class Collection(ContentBase):
    """An ordered set of episodes of one show (a season or a whole series)."""

    type: Literal["collection"] = "collection"
    episodes: list[Episode] = Field(default_factory=list)
    initial_type: Literal["series", "season"] = Field(default="series", alias="initialType")
    initial_season: Optional[int] = Field(default=None, alias="initialSeason")

    @model_validator(mode="after")
    def _normalize_episodes(self) -> "Collection":
        self.episodes = _sorted_unique(self.episodes)
        return self

    def __eq__(self, other) -> bool:
        if not isinstance(other, ContentBase):
            return NotImplemented
        return (
            isinstance(other, Collection)
            and self.title == other.title
            and [e.key() for e in self.episodes] == [e.key() for e in other.episodes]
        )

    def is_empty(self) -> bool:
        return not self.episodes

    def _has(self, ep: Episode) -> bool:
        return any(mine == ep for mine in self.episodes)

    def contains_any(self, content: "Content") -> bool:
        eps = _episodes_of(content)
        return bool(eps) and any(self._has(ep) for ep in eps)

    def contains_all(self, content: "Content") -> bool:
        eps = _episodes_of(content)
        return eps is not None and all(self._has(ep) for ep in eps)

    def add_episodes(self, episodes: list[Episode]) -> None:
        merged = self.episodes + [ep for ep in episodes if not self._has(ep)]
        self.episodes = _sorted_unique(merged)

    def remove_episodes(self, episodes: list[Episode]) -> int:
        before = len(self.episodes)
        self.episodes = [mine for mine in self.episodes if not any(mine == ep for ep in episodes)]
        return before - len(self.episodes)

    def pop_episodes(self, count: int) -> list[Episode]:
        """Remove and return up to *count* of the earliest episodes."""
        if count <= 0:
            return []
        popped, self.episodes = self.episodes[:count], self.episodes[count:]
        return popped

    def get_episode(self, season_num: int, episode_num: int) -> Optional[Episode]:
        for ep in self.episodes:
            if ep.season_num == season_num and ep.episode_num == episode_num:
                return ep
        return None

    def has_season(self, season_num: int) -> bool:
        return any(ep.season_num == season_num for ep in self.episodes)

    def filter_to_season(self, season_num: int) -> None:
        self.episodes = [ep for ep in self.episodes if ep.season_num == season_num]
        self.initial_type = "season"
        self.initial_season = season_num

    def filter_new(self, since: datetime) -> None:
        """Keep only episodes releasing after *since*."""
        self.episodes = [ep for ep in self.episodes if ep.release_date and ep.release_date > since]

    def released(self, now: datetime | None = None) -> Optional["Collection"]:
        """Copy holding only the released episodes, or None when nothing is out yet."""
        eps = [ep for ep in self.episodes if ep.is_released(now)]
        if not eps:
            return None
        return self.model_copy(update={"episodes": [ep.model_copy() for ep in eps]})

    def get_next_release(self, now: datetime | None = None) -> Optional[Episode]:
        now = now or datetime.now()
        upcoming = [ep for ep in self.episodes if ep.release_date and ep.release_date > now]
        return upcoming[0] if upcoming else None

    def get_desc(self) -> str:
        if not self.episodes:
            return self.title
        desc = f"{self.title} "
        prev: Optional[Episode] = None
        run_start: Optional[Episode] = None
        for ep in self.episodes:
            if prev is None:
                desc += f"S{ep.season_num:02d}E{ep.episode_num:02d}"
                run_start = ep
            elif ep.season_num != prev.season_num or ep.episode_num - prev.episode_num > 1:
                if prev is not run_start:
                    desc += f"-{prev.episode_num:02d}"
                if ep.season_num != prev.season_num:
                    desc += f", S{ep.season_num:02d}E{ep.episode_num:02d}"
                else:
                    desc += f" & E{ep.episode_num:02d}"
                run_start = ep
            prev = ep
        if prev is not run_start:
            desc += f"-{prev.episode_num:02d}"
        return desc

    def to_object(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"episodes": {"__all__": {"torrent"}}})


Video = Union[Movie, Episode]
Content = Annotated[Union[Movie, Episode, Collection], Field(discriminator="type")]

_content_adapter: TypeAdapter = TypeAdapter(Content)


def content_from_object(obj: dict) -> Union[Movie, Episode, Collection]:
    """Rebuild a typed content item from its serialized form."""
    return _content_adapter.validate_python(obj)
