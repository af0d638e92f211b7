"""
Service: chat_intents.py
- Classement léger (regex) d'un message libre de l'équipe.

Ordre de priorité (une seule classification par message) :
1) `where`  : "where", "distance", "far" → distance à la cible
2) `hint`   : "hint", "help"             → indice générique
3) `answer` : préfixe "answer:" / "a:" (retiré) ou texte libre, uniquement si le mode
              de l'indice courant accepte une réponse
4) `unknown`: invite à utiliser une commande valide
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from geohunt.models.clue import ValidationMode

_WHERE = re.compile(r"\b(where|distance|far)\b")
_HINT = re.compile(r"\b(hint|help)\b")
# "a " n'est pas retiré : "a bridge" peut être la réponse elle-même
_ANSWER_PREFIX = re.compile(r"^(answer[:\s]|a:)\s*", re.IGNORECASE)


class IntentKind(str, Enum):
    WHERE = "where"
    HINT = "hint"
    ANSWER = "answer"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ChatIntent:
    kind: IntentKind
    text: str = ""


def classify_intent(text: str, mode: ValidationMode) -> ChatIntent:
    lower = (text or "").strip().lower()
    if _WHERE.search(lower):
        return ChatIntent(IntentKind.WHERE)
    if _HINT.search(lower):
        return ChatIntent(IntentKind.HINT)
    if mode.needs_answer:
        answer = _ANSWER_PREFIX.sub("", text.strip(), count=1).strip()
        return ChatIntent(IntentKind.ANSWER, answer)
    return ChatIntent(IntentKind.UNKNOWN)
