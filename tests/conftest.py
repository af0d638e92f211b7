from __future__ import annotations

import io
from pathlib import Path

import orjson
import pytest
from PIL import Image

from geohunt.services.clue_graph import ClueGraph
from geohunt.services.geofence import GeoPoint
from geohunt.services.progress_store import TeamProgressStore
from geohunt.services.validation_engine import ValidationEngine

METERS_PER_DEGREE_LAT = 111194.93


def near(clue_lat: float, clue_lng: float, meters: float) -> GeoPoint:
    """Point situé `meters` au nord du centre donné."""
    return GeoPoint(clue_lat + meters / METERS_PER_DEGREE_LAT, clue_lng)


def png_bytes(color=(200, 30, 30), size=(64, 64)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def fake_image_scorer(reference, candidate) -> float:
    """b"match" → 0.9, tout le reste → 0.2 (la référence doit exister)."""
    assert Path(reference).is_file()
    return 0.9 if candidate == b"match" else 0.2


class RecordingChannel:
    def __init__(self) -> None:
        self.events = []

    async def publish(self, team_id, event_type, payload):
        self.events.append((team_id, event_type, payload))
        return 1

    def of_type(self, event_type):
        return [payload for _, kind, payload in self.events if kind == event_type]

    def bot_texts(self):
        return [p["text"] for p in self.of_type("chat:message") if p["role"] == "bot"]


def sample_config() -> dict:
    return {
        "startClueId": "start",
        "clues": [
            {
                "id": "start",
                "name": "Town Square",
                "lat": 48.0,
                "lng": 2.0,
                "radiusMeters": 50,
                "referenceImage": "assets/clues/start.png",
                "validationMode": "both",
                "question": "Which landmark is painted on the wall?",
                "expectedAnswer": "Eiffel Tower",
                "hints": ["g1", "g2", "g3"],
                "hintsPhoto": ["p1", "p2"],
                "hintsAnswer": ["a1"],
                "successMessage": "Nice",
                "nextClueId": "mid",
            },
            {
                "id": "mid",
                "name": "Market",
                "lat": 48.01,
                "lng": 2.0,
                "radiusMeters": 50,
                "referenceImage": "assets/clues/mid.png",
                "validationMode": "either",
                "question": "How many stalls sell bread?",
                "expectedAnswer": "seven",
                "nextClueId": "photo-only",
            },
            {
                "id": "photo-only",
                "name": "Statue",
                "lat": 48.02,
                "lng": 2.0,
                "radiusMeters": 30,
                "referenceImage": "assets/clues/photo-only.png",
                "validationMode": "photo",
                "nextClueId": "qa-only",
            },
            {
                "id": "qa-only",
                "name": "River",
                "lat": 48.03,
                "lng": 2.0,
                "radiusMeters": 80,
                "requirePhoto": False,
                "requireQA": True,
                "question": "Which river flows under the bridge?",
                "expectedAnswer": "river",
            },
        ],
        "wrongImageTips": ["global image tip"],
        "wrongAnswerTips": ["global answer tip"],
    }


@pytest.fixture
def graph(tmp_path) -> ClueGraph:
    config_path = tmp_path / "game_config.json"
    config_path.write_bytes(orjson.dumps(sample_config()))
    clues_dir = tmp_path / "assets" / "clues"
    clues_dir.mkdir(parents=True)
    for clue_id in ("start", "mid", "photo-only"):
        (clues_dir / f"{clue_id}.png").write_bytes(png_bytes())
    g = ClueGraph(config_path, tmp_path)
    g.load()
    return g


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def store() -> TeamProgressStore:
    return TeamProgressStore()


@pytest.fixture
def engine(graph, store, channel) -> ValidationEngine:
    return ValidationEngine(graph, store, channel, image_scorer=fake_image_scorer)
