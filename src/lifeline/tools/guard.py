"""Deny-list guard for actions that touch protected resources."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

WHITESPACE_RE = re.compile(r"\s+")

PROTECTED_NAMES = (
    "wallet.json",
    "identity.json",
    ".nostr",
    "state.json",
    "turns.jsonl",
    "state.db",
    "audit.log",
    "audit-log",
    "schedule.yml",
    "heartbeat.yml",
    "soul.md",
    "injection-defense",
    "self-mod",
)
SECRET_MARKERS = (r"\.ssh", r"\.gnupg", r"wallet\.json", r"id_rsa", r"id_ed25519", r"\.env(?:\.[\w-]+)?")

# A token starts after whitespace, a path separator, a quote, a redirect or an assignment.
TOKEN_START = r"(?:^|[\s/'\"=<>(])"
TOKEN_END = r"(?=$|[\s/'\";&|)])"

SECRET_RE = re.compile(TOKEN_START + "(?:" + "|".join(SECRET_MARKERS) + ")" + TOKEN_END)
SQL_DESTRUCTIVE_RE = re.compile(r"\b(drop\s+table|delete\s+from|truncate\s+table)\b")
ROOT_WIPE_RE = re.compile(r"\brm\s+(-[a-z]*\s+)*-[a-z]*r[a-z]*\s+(/|~|\$home)/?(\s|$|\*)")
ROOT_FIND_DELETE_RE = re.compile(r"\bfind\s+(/|~|\$home)/?\s[^;&|]*-delete\b")
SECRET_READERS = r"\b(cat|less|more|head|tail|cp|scp|rsync|base64|xxd|strings|curl|grep|source)\b"


@dataclass(frozen=True)
class GuardVerdict:
    allowed: bool
    reason: str | None = None


ALLOWED = GuardVerdict(allowed=True)


def normalize_command(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text.casefold()).strip()


class ProtectedResourcePolicy:
    """Matches shell commands and file paths against the protected-resource deny-list.

    Any command that names a protected file or a protected directory is refused,
    whatever the verb: copies, links, redirects and interpreter one-liners can all
    replace durable state. The remaining rules cover targets that are not files of
    the agent (the root directory, the agent process, the database tables).
    """

    def __init__(
        self,
        *,
        home: Path | None = None,
        extra_paths: Iterable[str] = (),
        process_name: str = "lifeline",
    ) -> None:
        protected_dirs: list[str] = []
        if home is not None:
            protected_dirs.append(str(home.expanduser()).casefold().rstrip("/"))
            protected_dirs.append(f"~/{home.name}".casefold())
        protected_dirs.extend(normalize_command(str(path)).rstrip("/") for path in extra_paths if str(path).strip())
        self._names = PROTECTED_NAMES
        self._dirs = tuple(directory for directory in protected_dirs if directory)
        names = "|".join(re.escape(item) for item in self._names)
        process = re.escape(process_name.casefold())
        rules: list[tuple[re.Pattern[str], str]] = [
            (ROOT_WIPE_RE, "recursive removal of the root or home directory"),
            (ROOT_FIND_DELETE_RE, "recursive removal of the root or home directory"),
            (re.compile(TOKEN_START + f"({names})"), "reference to a protected resource"),
        ]
        if self._dirs:
            dirs = "|".join(re.escape(item) for item in self._dirs)
            rules.append((re.compile(rf"(?:^|[\s'\"=<>(])({dirs}){TOKEN_END}"), "reference to a protected directory"))
        rules.extend(
            [
                (re.compile(SECRET_READERS + r"[^;&|]*?" + SECRET_RE.pattern), "access to secret material"),
                (re.compile(rf"\b(kill|pkill|killall)\b[^;&|]*({process}|\$\$)"), "terminating the agent process"),
                (
                    re.compile(rf"\bsystemctl\s+(stop|disable|mask|kill)\s+[^;&|]*{process}"),
                    "stopping the agent service",
                ),
                (SQL_DESTRUCTIVE_RE, "destructive statement against durable state"),
            ]
        )
        self._rules = tuple(rules)

    def check_command(self, text: str) -> GuardVerdict:
        normalized = normalize_command(text)
        for pattern, reason in self._rules:
            if pattern.search(normalized):
                return GuardVerdict(allowed=False, reason=reason)
        return ALLOWED

    def _protected_path(self, path: str) -> bool:
        target = normalize_command(path)
        expanded = str(Path(path).expanduser()).casefold()
        for candidate in {target, expanded}:
            for name in self._names:
                if re.search(rf"(^|/){re.escape(name)}(/|$)", candidate):
                    return True
            for directory in self._dirs:
                if candidate == directory or candidate.startswith(directory + "/"):
                    return True
        return False

    def check_write(self, path: str) -> GuardVerdict:
        if self._protected_path(path):
            return GuardVerdict(allowed=False, reason=f"write to protected path {path}")
        return ALLOWED

    def check_read(self, path: str) -> GuardVerdict:
        target = str(Path(path).expanduser()).casefold()
        if SECRET_RE.search(target):
            return GuardVerdict(allowed=False, reason=f"read of secret material {path}")
        return ALLOWED
