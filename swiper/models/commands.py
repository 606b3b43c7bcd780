"""Command table and prompt replies understood by a session."""
from __future__ import annotations

import re

# name -> handler method on Swiper, argument hint, description.
# Aliases point at their primary command.
COMMANDS: dict[str, dict] = {
    "download": {
        "func": "download",
        "arg": "<content>",
        "aliases": ["get"],
        "desc": "Downloads the best torrent for a show or movie.",
    },
    "search": {
        "func": "search",
        "arg": "<content>",
        "desc": "Returns a list of torrents for a show or movie.",
    },
    "monitor": {
        "func": "monitor",
        "arg": "<content>",
        "aliases": ["watch"],
        "desc": "Adds an item to check on intermittently until it's found.",
    },
    "check": {
        "func": "check",
        "desc": "Perform search for monitored items now.",
    },
    "remove": {
        "func": "remove",
        "arg": "<content>",
        "aliases": ["delete"],
        "desc": "Removes the given item from monitored, queued, or downloading.",
    },
    "abort": {
        "func": "abort",
        "desc": "Aborts any downloads started by you.",
    },
    "cancel": {
        "desc": "Ends the current conversation.",
    },
    "status": {
        "func": "get_status",
        "aliases": ["progress", "state"],
        "desc": "Shows items being monitored, queued, and downloaded.",
    },
    "help": {
        "func": "get_commands",
        "arg": "(<command>)",
        "aliases": ["commands"],
        "desc": "Returns the list of commands, or describes the given command.",
    },
}

ALIASES: dict[str, str] = {
    alias: name for name, info in COMMANDS.items() for alias in info.get("aliases", [])
}


def lookup_command(word: str) -> dict | None:
    """Resolve a command word (or alias) to its table entry."""
    word = word.lower()
    return COMMANDS.get(ALIASES.get(word, word))


# ----------------------------------------------------------------------
# Prompt replies
# ----------------------------------------------------------------------

RESPONSES: dict[str, re.Pattern] = {
    "yes": re.compile(r"\b(?:y|yes|yeah|yep|sure)\b", re.I),
    "no": re.compile(r"\b(?:n|no|nope)\b", re.I),
    "download": re.compile(r"\bd(?:ownload)?(?=\s*\d|\b)", re.I),
    "search": re.compile(r"\bsearch\b", re.I),
    "monitor": re.compile(r"\b(?:monitor|watch)\b", re.I),
    "series": re.compile(r"\bseries\b", re.I),
    "new": re.compile(r"\bnew\b", re.I),
    "next": re.compile(r"\bnext\b", re.I),
    "prev": re.compile(r"\bprev(?:ious)?\b", re.I),
    "episode": re.compile(r"\bep?(?:isode)?\s?\d{1,2}\b", re.I),
    "season_or_episode": re.compile(
        r"\b(?:s(?:eason)?\s?\d{1,2}(?:\s?ep?(?:isode)?\s?\d{1,2})?|ep?(?:isode)?\s?\d{1,2})\b",
        re.I,
    ),
}

# Replies that resolve to another reply's value.
RESPONSE_VALUES: dict[str, str] = {
    "season_or_episode": "episode",
}
