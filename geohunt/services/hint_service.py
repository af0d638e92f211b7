from __future__ import annotations

from typing import List

from geohunt.models.clue import Clue, GameConfig
from geohunt.models.progress import HintKind, TeamProgress

DEFAULT_TIP = "Try a different angle, match the view, or read nearby signs."


def _clue_hints(clue: Clue, kind: HintKind) -> List[str]:
    if kind is HintKind.PHOTO:
        return list(clue.hints_photo)
    if kind is HintKind.ANSWER:
        return list(clue.hints_answer)
    return list(clue.hints)


def _global_tips(config: GameConfig) -> List[str]:
    for tips in (config.wrong_image_tips, config.wrong_answer_tips):
        cleaned = [t for t in tips if t and t.strip()]
        if cleaned:
            return cleaned
    return []


def resolve_hint_list(config: GameConfig, clue: Clue, kind: HintKind) -> List[str]:
    """
    Liste effective pour un type d'indice :
    liste spécifique → liste générique de l'indice → astuces globales (image puis réponse).
    Vide si rien n'est configuré.
    """
    hints = _clue_hints(clue, kind)
    if not hints and kind is not HintKind.GENERIC:
        hints = _clue_hints(clue, HintKind.GENERIC)
    if not hints:
        hints = _global_tips(config)
    return hints


def next_hint(config: GameConfig, clue: Clue, progress: TeamProgress, kind: HintKind) -> str:
    """
    Renvoie l'indice pointé par le curseur du type demandé puis avance ce curseur
    d'un cran au plus. Le curseur est borné au dernier indice : au-delà de la
    liste, le dernier indice est répété (pas de retour au début).
    """
    hints = resolve_hint_list(config, clue, kind)
    if not hints:
        return DEFAULT_TIP
    last = len(hints) - 1
    cursor = progress.hint_cursor.get(kind, 0)
    idx = max(0, min(cursor, last))
    # liste raccourcie par l'admin : borné à la lecture, jamais reculé
    progress.hint_cursor[kind] = max(cursor, min(last, idx + 1))
    return hints[idx] or DEFAULT_TIP
