"""
Models / clue.py
Rôle:
- Définir un indice (Clue) et la configuration de jeu (GameConfig) telles que persistées
  dans `game_config.json` (clés camelCase côté disque).
- Résoudre une seule fois, au chargement, le mode de validation d'un indice
  (valeur explicite ou anciens drapeaux `requirePhoto` / `requireQA`).

Champs legacy acceptés à la lecture:
- `imagePath` → `referenceImage`
- `hint` → `successMessage`
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from geohunt.services.similarity import normalize_text

MAX_HINTS_PER_KIND = 3


class ValidationMode(str, Enum):
    PHOTO = "photo"
    QA = "qa"
    BOTH = "both"
    EITHER = "either"

    @property
    def needs_photo(self) -> bool:
        return self is not ValidationMode.QA

    @property
    def needs_answer(self) -> bool:
        return self is not ValidationMode.PHOTO


def resolve_validation_mode(
    explicit: Optional[ValidationMode],
    require_photo: Optional[bool],
    require_qa: Optional[bool],
) -> ValidationMode:
    """Mode explicite prioritaire, sinon dérivé des drapeaux (photo par défaut)."""
    if explicit is not None:
        return ValidationMode(explicit)
    photo = True if require_photo is None else require_photo
    qa = False if require_qa is None else require_qa
    if photo and qa:
        return ValidationMode.BOTH
    if qa:
        return ValidationMode.QA
    return ValidationMode.PHOTO


_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ClueSummary(BaseModel):
    """Vue publique d'un indice : jamais d'image de référence ni de réponse attendue."""

    id: str
    name: str
    lat: float
    lng: float
    radius_meters: float
    require_photo: bool = Field(alias="requirePhoto")
    require_qa: bool = Field(alias="requireQA")
    question: str
    validation_mode: ValidationMode

    model_config = _CAMEL


class Clue(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""
    lat: float = 0.0
    lng: float = 0.0
    radius_meters: float = Field(default=50.0, gt=0)
    reference_image: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("referenceImage", "imagePath"),
    )
    validation_mode: Optional[ValidationMode] = None
    require_photo: Optional[bool] = None
    require_qa: Optional[bool] = Field(default=None, alias="requireQA")
    question: str = ""
    expected_answer: str = ""
    hints: List[str] = Field(default_factory=list)
    hints_photo: List[str] = Field(default_factory=list)
    hints_answer: List[str] = Field(default_factory=list)
    success_message: str = Field(default="", validation_alias=AliasChoices("successMessage", "hint"))
    next_clue_id: Optional[str] = None

    model_config = _CAMEL

    _mode: ValidationMode = PrivateAttr(default=ValidationMode.PHOTO)

    @field_validator("hints", "hints_photo", "hints_answer", mode="before")
    @classmethod
    def _clean_hints(cls, value):
        if value is None:
            return []
        return [h for h in value if isinstance(h, str) and h.strip()][:MAX_HINTS_PER_KIND]

    @field_validator("next_clue_id", "reference_image", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _resolve_mode(self) -> "Clue":
        self._mode = resolve_validation_mode(self.validation_mode, self.require_photo, self.require_qa)
        if self._mode.needs_answer:
            # réponse attendue non vide après normalisation
            if not normalize_text(self.expected_answer):
                raise ValueError(f"clue {self.id!r}: expectedAnswer required for mode {self._mode.value}")
            if not self.question.strip():
                raise ValueError(f"clue {self.id!r}: question required for mode {self._mode.value}")
        return self

    @property
    def mode(self) -> ValidationMode:
        return self._mode

    def summary(self) -> ClueSummary:
        return ClueSummary(
            id=self.id,
            name=self.name,
            lat=self.lat,
            lng=self.lng,
            radius_meters=self.radius_meters,
            require_photo=self.mode.needs_photo,
            require_qa=self.mode.needs_answer,
            question=self.question,
            validation_mode=self.mode,
        )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GameConfig(BaseModel):
    start_clue_id: Optional[str] = None
    clues: List[Clue] = Field(default_factory=list)
    wrong_image_tips: List[str] = Field(default_factory=list)
    wrong_answer_tips: List[str] = Field(default_factory=list)

    model_config = _CAMEL

    _by_id: Dict[str, Clue] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _index_clues(self) -> "GameConfig":
        by_id: Dict[str, Clue] = {}
        for clue in self.clues:
            if clue.id in by_id:
                raise ValueError(f"duplicate clue id: {clue.id}")
            by_id[clue.id] = clue
        if by_id and self.start_clue_id not in by_id:
            raise ValueError(f"start clue {self.start_clue_id!r} does not exist")
        self._by_id = by_id
        return self

    def get(self, clue_id: Optional[str]) -> Optional[Clue]:
        if clue_id is None:
            return None
        return self._by_id.get(clue_id)

    def __contains__(self, clue_id: object) -> bool:
        return clue_id in self._by_id

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
