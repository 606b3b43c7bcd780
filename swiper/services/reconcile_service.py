"""Reconciliation: title-keyed merge/remove of content in a stored list.

A list (``monitored`` or ``queued``) holds at most one entry per title.
Both functions mutate *items* in place and return ``None`` on success, or
return a human-readable reason and leave *items* untouched.

Movies only ever match movies.  TV items (``Episode`` or ``Collection``) are
compared as episode sets, so an Episode on either side behaves like a
one-episode collection; two distinct episodes of one show are promoted into
a single Collection.
"""
from __future__ import annotations

from typing import Optional

from swiper.models.content import Collection, Episode, Movie


def _find_by_title(items: list, title: str) -> int:
    for i, item in enumerate(items):
        if item.title == title:
            return i
    return -1


def _episode_set(content) -> list[Episode]:
    if isinstance(content, Collection):
        return content.episodes
    return [content]


def _has_episode(episodes: list[Episode], ep: Episode) -> bool:
    return any(mine == ep for mine in episodes)


def add_content(items: list, content, label: str = "monitored") -> Optional[str]:
    """Merge *content* into *items*."""
    if isinstance(content, Collection) and content.is_empty():
        return "There are currently no such episodes."

    idx = _find_by_title(items, content.title)
    if idx < 0:
        items.append(content)
        return None

    existing = items[idx]
    if isinstance(existing, Movie) and isinstance(content, Movie):
        if existing == content:
            return f"{content.get_desc()} is already {label}."
        return f"{existing.get_desc()} is already {label} under that title."
    if isinstance(existing, Movie) or isinstance(content, Movie):
        kind = "movie" if isinstance(existing, Movie) else "show"
        return f"{content.title} is already {label} as a {kind}."

    existing_eps = _episode_set(existing)
    incoming_eps = _episode_set(content)
    if all(_has_episode(existing_eps, ep) for ep in incoming_eps):
        return f"{content.get_desc()} is already {label}."

    if isinstance(existing, Episode):
        items[idx] = Collection(
            title=existing.title,
            episodes=[existing, *incoming_eps],
            initial_type="series",
            swiper_id=existing.swiper_id,
        )
    else:
        existing.add_episodes(incoming_eps)
    return None


def remove_content(items: list, content, label: str = "monitored") -> Optional[str]:
    """Remove *content* (or the part of it that is present) from *items*."""
    not_there = f"{content.get_desc()} is not {label}."

    idx = _find_by_title(items, content.title)
    if idx < 0:
        return not_there

    existing = items[idx]
    if isinstance(existing, Movie) or isinstance(content, Movie):
        if existing == content:
            del items[idx]
            return None
        return not_there

    incoming_eps = _episode_set(content)
    if not any(_has_episode(_episode_set(existing), ep) for ep in incoming_eps):
        return not_there

    if isinstance(existing, Episode):
        del items[idx]
        return None
    existing.remove_episodes(incoming_eps)
    if existing.is_empty():
        del items[idx]
    return None
