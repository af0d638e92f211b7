"""
Lecture / écriture JSON pour la config de chasse (orjson, fichiers binaires).

- `read_json` : None si le fichier n'existe pas encore.
- `write_json` : écrit à côté (`<nom>.tmp`) puis remplace la cible d'un coup,
  le fichier n'est jamais observé à moitié écrit. Sortie indentée pour rester
  éditable à la main.
"""
from pathlib import Path
from typing import Any, Optional

import orjson


def read_json(path: Path) -> Optional[Any]:
    if not path.is_file():
        return None
    return orjson.loads(path.read_bytes())


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    tmp.replace(path)
