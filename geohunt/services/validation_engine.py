"""
Service: validation_engine.py
Rôle:
- Machine à états par équipe : une équipe est toujours "sur" un indice
  (AtClue). Une soumission (photo, réponse, message de chat) est évaluée
  contre le mode de validation de l'indice courant, puis l'équipe avance ou
  reste en attente avec ses preuves partielles.
- Sélection des indices (hints) en cas d'échec et notifications vers les
  clients de l'équipe.

Transition (cf. `resolve_attempt`) — zone géographique requise dans tous les cas :
    mode    | photo soumise avance si   | réponse soumise avance si
    photo   | photo acceptée            | photo déjà acquise
    qa      | réponse déjà acquise      | réponse acceptée
    both    | photo ET réponse acquises | photo ET réponse acquises
    either  | photo OU réponse acquise  | photo OU réponse acquise

Concurrence:
- Toute lecture-modification-écriture d'une progression s'exécute sous le
  verrou de l'équipe (`TeamProgressStore.team_lock`). Le contrôle "indice
  périmé" est fait sous ce verrou.
- Le calcul de similarité image tourne dans un thread (anyio), verrou tenu :
  deux soumissions d'une même équipe ne se chevauchent jamais.
- La config est lue une seule fois par requête (snapshot de ClueGraph).

Erreurs:
- NotJoined / StaleSubmission / InvalidClue : aucune mutation.
- ReferenceImageMissing / DecodeFailure : levées avant toute mutation.
- Un seuil non atteint n'est pas une erreur : résultat structuré.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import anyio

from geohunt.config.settings import settings
from geohunt.models.clue import Clue, GameConfig, ValidationMode
from geohunt.models.progress import (
    Advanced,
    AttemptState,
    ChatMessage,
    ChatRole,
    HintKind,
    Pending,
    ProofKind,
    TeamProgress,
)
from .chat_intents import ChatIntent, IntentKind, classify_intent
from .clue_graph import ClueGraph
from .errors import InvalidClue, StaleSubmission
from .geofence import GeoPoint, distance_to, usable_point
from .hint_service import next_hint
from .progress_store import TeamProgressStore
from .similarity import ImageSource, image_similarity, text_similarity
from .ws_manager import NotificationChannel

logger = logging.getLogger(__name__)

ImageScorer = Callable[[ImageSource, ImageSource], float]
TextScorer = Callable[[str, str], float]

EVENT_PROGRESS = "progress"
EVENT_CHAT_MESSAGE = "chat:message"

FALLBACK_PROMPT = 'Try sending "hint", "where", or start your answer with "answer:".'

_PROOF_LABEL = {ProofKind.PHOTO: "Photo", ProofKind.ANSWER: "Answer"}


def resolve_attempt(
    mode: ValidationMode,
    proof: ProofKind,
    proof_ok: bool,
    pending: Pending,
    geo_ok: bool,
) -> AttemptState:
    """
    Fonction pure de transition. La preuve acceptée est intégrée au Pending
    (jamais retirée), puis on décide si l'équipe avance.
    """
    updated = pending.accept(proof) if proof_ok else pending
    if not geo_ok:
        return updated
    if mode is ValidationMode.PHOTO:
        passed = proof_ok if proof is ProofKind.PHOTO else updated.photo
    elif mode is ValidationMode.QA:
        passed = proof_ok if proof is ProofKind.ANSWER else updated.qa
    elif mode is ValidationMode.BOTH:
        passed = updated.photo and updated.qa
    else:
        passed = updated.photo or updated.qa
    return Advanced() if passed else updated


@dataclass(frozen=True)
class SubmissionResult:
    proof: ProofKind
    advanced: bool
    geo_ok: bool
    proof_ok: bool
    similarity: float
    distance: Optional[float]
    done: bool = False
    next_clue_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        key = "imgOk" if self.proof is ProofKind.PHOTO else "ansOk"
        return {
            "ok": self.advanced,
            "geoOk": self.geo_ok,
            key: self.proof_ok,
            "similarity": self.similarity,
            "distance": self.distance,
        }


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


class ValidationEngine:
    def __init__(
        self,
        graph: ClueGraph,
        store: TeamProgressStore,
        channel: NotificationChannel,
        *,
        image_scorer: ImageScorer = image_similarity,
        text_scorer: TextScorer = text_similarity,
        photo_threshold: Optional[float] = None,
        answer_threshold: Optional[float] = None,
    ) -> None:
        self.graph = graph
        self.store = store
        self.channel = channel
        self.image_scorer = image_scorer
        self.text_scorer = text_scorer
        self.photo_threshold = settings.PHOTO_THRESHOLD if photo_threshold is None else photo_threshold
        self.answer_threshold = settings.ANSWER_THRESHOLD if answer_threshold is None else answer_threshold

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _current_clue(config: GameConfig, progress: TeamProgress) -> Clue:
        clue = config.get(progress.current_clue_id)
        if clue is None:
            raise InvalidClue(f"unknown clue {progress.current_clue_id!r}")
        return clue

    @staticmethod
    def _check_current(progress: TeamProgress, clue_id: str) -> None:
        if progress.current_clue_id != clue_id:
            logger.info(
                "Stale submission rejected",
                extra={"team_id": progress.team_id, "clue_id": clue_id, "current": progress.current_clue_id},
            )
            raise StaleSubmission(f"clue {clue_id!r} is not the current clue")

    @staticmethod
    def _geo(clue: Clue, point: Optional[GeoPoint]) -> Tuple[float, bool]:
        distance = distance_to(point, GeoPoint(clue.lat, clue.lng))
        return distance, distance <= clue.radius_meters

    async def _notify(self, team_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            await self.channel.publish(team_id, event_type, payload)
        except Exception:
            logger.warning("Notification failed", exc_info=True, extra={"team_id": team_id, "event": event_type})

    async def _post_chat(self, team_id: str, role: ChatRole, text: str) -> ChatMessage:
        message = self.store.append_chat(team_id, ChatMessage(role=role, text=text))
        await self._notify(team_id, EVENT_CHAT_MESSAGE, message.model_dump())
        return message

    async def _advance(self, config: GameConfig, progress: TeamProgress, clue: Clue, proof: ProofKind) -> Optional[str]:
        """Transition Advanced : historique, indice suivant, remise à zéro, notifications."""
        progress.history.append(clue.id)
        target = config.get(clue.next_clue_id)
        if target is not None:
            progress.current_clue_id = target.id
        else:
            if clue.next_clue_id:
                logger.warning(
                    "Next clue does not exist, team stays in place",
                    extra={"team_id": progress.team_id, "clue_id": clue.id, "next_clue_id": clue.next_clue_id},
                )
            progress.finished = True
        progress.reset_attempt()

        done = target is None
        next_id = target.id if target is not None else None
        text = clue.success_message or f"{_PROOF_LABEL[proof]} accepted."
        if done:
            text = f"{text} Hunt complete!"
        logger.info(
            "Team advanced",
            extra={"team_id": progress.team_id, "clue_id": clue.id, "next_clue_id": next_id, "done": done},
        )
        await self._notify(progress.team_id, EVENT_PROGRESS, {"nextClueId": next_id, "done": done, "message": text})
        await self._post_chat(progress.team_id, "bot", text)
        return next_id

    async def _stay(
        self,
        config: GameConfig,
        progress: TeamProgress,
        clue: Clue,
        proof: ProofKind,
        proof_ok: bool,
        state: Pending,
        geo_ok: bool,
    ) -> None:
        """Transition Pending : conserve les preuves, message d'étape ou indice d'échec."""
        progress.satisfaction = state
        team_id = progress.team_id
        relevant = clue.mode.needs_photo if proof is ProofKind.PHOTO else clue.mode.needs_answer
        if not relevant:
            return
        label = _PROOF_LABEL[proof]
        if proof_ok:
            if not geo_ok:
                await self._post_chat(team_id, "bot", f"{label} accepted. Move closer to the target circle.")
            elif proof is ProofKind.PHOTO:
                await self._post_chat(team_id, "bot", "Photo accepted. Answer the question to continue.")
            else:
                await self._post_chat(team_id, "bot", "Answer accepted. Submit a photo to continue.")
            return
        if proof is ProofKind.ANSWER:
            await self._post_chat(team_id, "bot", "Answer not accepted.")
        kind = HintKind.PHOTO if proof is ProofKind.PHOTO else HintKind.ANSWER
        tip = next_hint(config, clue, progress, kind)
        await self._post_chat(team_id, "bot", f"Hint: {tip}")

    async def _settle(
        self,
        config: GameConfig,
        progress: TeamProgress,
        clue: Clue,
        proof: ProofKind,
        proof_ok: bool,
        similarity: float,
        distance: float,
        geo_ok: bool,
        location: Optional[GeoPoint],
    ) -> SubmissionResult:
        if location is not None:
            progress.last_location = location
        state = resolve_attempt(clue.mode, proof, proof_ok, progress.satisfaction, geo_ok)
        next_id: Optional[str] = None
        advanced = isinstance(state, Advanced)
        if advanced:
            next_id = await self._advance(config, progress, clue, proof)
        else:
            await self._stay(config, progress, clue, proof, proof_ok, state, geo_ok)
        return SubmissionResult(
            proof=proof,
            advanced=advanced,
            geo_ok=geo_ok,
            proof_ok=proof_ok,
            similarity=similarity,
            distance=_finite_or_none(distance),
            done=advanced and next_id is None,
            next_clue_id=next_id,
        )

    # -----------------------------
    # Opérations publiques
    # -----------------------------
    async def join_team(self, team_id: str) -> Dict[str, Any]:
        """
        Crée la progression au premier contact et poste un message d'accueil.
        L'historique renvoyé inclut ce message (pour un client qui s'abonne après coup).
        """
        config = self.graph.snapshot()
        if not config.start_clue_id:
            raise InvalidClue("no start clue configured")
        async with self.store.team_lock(team_id, create=True):
            progress = self.store.get_or_create(team_id, config.start_clue_id)
            clue = self._current_clue(config, progress)
            await self._post_chat(
                team_id,
                "bot",
                f'Welcome! You are at clue "{clue.name}". Ask for a hint or send your answer.',
            )
            history = [m.model_dump() for m in self.store.chat_history(team_id)]
            return {
                "state": {"currentClueId": progress.current_clue_id, "hint": f"Start at: {clue.name}"},
                "history": history,
            }

    async def submit_photo(
        self,
        team_id: str,
        clue_id: str,
        location: Optional[GeoPoint],
        image: ImageSource,
    ) -> SubmissionResult:
        location = usable_point(location)
        config = self.graph.snapshot()
        async with self.store.team_lock(team_id):
            progress = self.store.get(team_id)
            self._check_current(progress, clue_id)
            clue = self._current_clue(config, progress)
            distance, geo_ok = self._geo(clue, location or progress.last_location)

            similarity = 1.0
            img_ok = True
            if clue.mode.needs_photo:
                reference = self.graph.reference_image_path(clue)
                similarity = await anyio.to_thread.run_sync(self.image_scorer, reference, image)
                img_ok = similarity >= self.photo_threshold

            return await self._settle(
                config, progress, clue, ProofKind.PHOTO, img_ok, similarity, distance, geo_ok, location
            )

    async def _answer_locked(
        self,
        config: GameConfig,
        progress: TeamProgress,
        clue: Clue,
        location: Optional[GeoPoint],
        answer_text: str,
    ) -> SubmissionResult:
        distance, geo_ok = self._geo(clue, location or progress.last_location)
        similarity = self.text_scorer(answer_text, clue.expected_answer)
        ans_ok = (not clue.mode.needs_answer) or similarity >= self.answer_threshold
        return await self._settle(
            config, progress, clue, ProofKind.ANSWER, ans_ok, similarity, distance, geo_ok, location
        )

    async def submit_answer(
        self,
        team_id: str,
        clue_id: str,
        location: Optional[GeoPoint],
        answer_text: str,
    ) -> SubmissionResult:
        location = usable_point(location)
        config = self.graph.snapshot()
        async with self.store.team_lock(team_id):
            progress = self.store.get(team_id)
            self._check_current(progress, clue_id)
            clue = self._current_clue(config, progress)
            await self._post_chat(team_id, "user", f"answer: {answer_text}")
            return await self._answer_locked(config, progress, clue, location, answer_text)

    async def request_hint(self, team_id: str) -> str:
        config = self.graph.snapshot()
        async with self.store.team_lock(team_id):
            progress = self.store.get(team_id)
            clue = self._current_clue(config, progress)
            tip = next_hint(config, clue, progress, HintKind.GENERIC)
            await self._post_chat(team_id, "bot", f"Hint: {tip}")
            return tip

    async def handle_chat(
        self,
        team_id: str,
        text: str,
        location: Optional[GeoPoint] = None,
    ) -> Optional[ChatIntent]:
        """
        Message libre : journalisé, classé une seule fois, puis routé
        (distance, indice, réponse, ou invite par défaut).
        """
        text = (text or "").strip()
        if not text:
            return None
        location = usable_point(location)
        config = self.graph.snapshot()
        async with self.store.team_lock(team_id):
            progress = self.store.get(team_id)
            clue = self._current_clue(config, progress)
            if location is not None:
                progress.last_location = location
            await self._post_chat(team_id, "user", text)

            intent = classify_intent(text, clue.mode)
            if intent.kind is IntentKind.WHERE:
                distance, _ = self._geo(clue, progress.last_location)
                if math.isfinite(distance):
                    reply = f"You are {math.floor(distance + 0.5)}m from the target circle."
                else:
                    reply = "Share your location so I can measure the distance."
                await self._post_chat(team_id, "bot", reply)
            elif intent.kind is IntentKind.HINT:
                tip = next_hint(config, clue, progress, HintKind.GENERIC)
                await self._post_chat(team_id, "bot", f"Hint: {tip}")
            elif intent.kind is IntentKind.ANSWER:
                await self._answer_locked(config, progress, clue, location, intent.text)
            else:
                await self._post_chat(team_id, "bot", FALLBACK_PROMPT)
            return intent

    def team_snapshot(self, team_id: str) -> Dict[str, Any]:
        return self.store.get(team_id).to_dict()
