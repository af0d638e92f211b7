"""
Team progress store
===================

Registre en mémoire des progressions d'équipes et de leurs fils de chat.

- Une entrée `TeamProgress` par équipe, créée paresseusement au premier `join`.
- Un `asyncio.Lock` par équipe : toute lecture-modification-écriture d'une
  progression passe par `team_lock(team_id)`, une seule mutation en vol par
  équipe. Les équipes différentes ne partagent aucun verrou.
- Historique de chat borné (les plus anciens messages sont évincés).
"""
from __future__ import annotations

import asyncio
from collections import deque
from threading import RLock
from typing import Deque, Dict, List, Optional

from geohunt.config.settings import settings
from geohunt.models.progress import ChatMessage, TeamProgress
from .errors import NotJoined


class TeamProgressStore:
    def __init__(self, chat_limit: Optional[int] = None) -> None:
        self.chat_limit = chat_limit or settings.CHAT_HISTORY_LIMIT
        self._lock = RLock()
        self._progress: Dict[str, TeamProgress] = {}
        self._chat: Dict[str, Deque[ChatMessage]] = {}
        self._team_locks: Dict[str, asyncio.Lock] = {}

    # -----------------------------
    # Verrous par équipe
    # -----------------------------
    def team_lock(self, team_id: str, create: bool = False) -> asyncio.Lock:
        """
        Verrou de l'équipe. Seul `join` (create=True) peut en allouer un :
        pour une équipe inconnue on lève NotJoined sans rien enregistrer.
        """
        with self._lock:
            lock = self._team_locks.get(team_id)
            if lock is None:
                if not create and team_id not in self._progress:
                    raise NotJoined(f"team {team_id!r} has not joined")
                lock = asyncio.Lock()
                self._team_locks[team_id] = lock
            return lock

    def lock_count(self) -> int:
        with self._lock:
            return len(self._team_locks)

    # -----------------------------
    # Progressions
    # -----------------------------
    def get(self, team_id: str) -> TeamProgress:
        """Retourne la progression de l'équipe (NotJoined si inconnue)."""
        with self._lock:
            progress = self._progress.get(team_id)
        if progress is None:
            raise NotJoined(f"team {team_id!r} has not joined")
        return progress

    def find(self, team_id: str) -> Optional[TeamProgress]:
        with self._lock:
            return self._progress.get(team_id)

    def get_or_create(self, team_id: str, start_clue_id: str) -> TeamProgress:
        with self._lock:
            progress = self._progress.get(team_id)
            if progress is None:
                progress = TeamProgress(team_id=team_id, current_clue_id=start_clue_id)
                self._progress[team_id] = progress
            return progress

    def team_ids(self) -> List[str]:
        with self._lock:
            return list(self._progress.keys())

    # -----------------------------
    # Chat
    # -----------------------------
    def append_chat(self, team_id: str, message: ChatMessage) -> ChatMessage:
        with self._lock:
            log = self._chat.get(team_id)
            if log is None:
                log = deque(maxlen=self.chat_limit)
                self._chat[team_id] = log
            log.append(message)
        return message

    def chat_history(self, team_id: str) -> List[ChatMessage]:
        with self._lock:
            return list(self._chat.get(team_id, ()))
