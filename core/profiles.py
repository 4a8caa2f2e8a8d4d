"""
Language profiles: vocabulary (class id -> symbol), prosign abbreviation table and
the model reference for each decodable language.

The built-in English profile matches the model's 46 output classes. Extra profiles
(e.g. Japanese) are loaded from a JSON file:

    {
      "ja": {
        "vocabulary": ["[UNK]", "...", " "],
        "abbreviations": {"⒰": "AR"},
        "model": "models/ja.pt"
      }
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence, Tuple

from core.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

# Prosigns are emitted by the model as single glyphs (U+24B0..U+24B5)
PROSIGN_AR = "⒰"
PROSIGN_BT = "⒱"
PROSIGN_HH = "⒲"
PROSIGN_KN = "⒳"
PROSIGN_SK = "⒴"
PROSIGN_BK = "⒵"

ENGLISH_VOCABULARY: Tuple[str, ...] = (
    ("[UNK]", "/")
    + tuple("0123456789")
    + ("?",)
    + tuple("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
    + (PROSIGN_AR, PROSIGN_BT, PROSIGN_HH, PROSIGN_KN, PROSIGN_SK, PROSIGN_BK)
    + (" ",)
)

ENGLISH_ABBREVIATIONS: Dict[str, str] = {
    PROSIGN_AR: "AR",
    PROSIGN_BT: "BT",
    PROSIGN_HH: "HH",
    PROSIGN_KN: "KN",
    PROSIGN_SK: "SK",
    PROSIGN_BK: "BK",
}


@dataclass(frozen=True)
class LanguageProfile:
    name: str
    vocabulary: Tuple[str, ...]
    abbreviations: Mapping[str, str] = field(default_factory=dict)
    model_reference: str = ""

    def __post_init__(self):
        object.__setattr__(self, "vocabulary", tuple(self.vocabulary))
        object.__setattr__(self, "abbreviations", MappingProxyType(dict(self.abbreviations)))

    @property
    def num_classes(self) -> int:
        return len(self.vocabulary)

    def describe(self) -> Dict[str, object]:
        """JSON-serializable summary (for GET /profiles)."""
        return {
            "name": self.name,
            "num_classes": self.num_classes,
            "abbreviations": dict(self.abbreviations),
            "model": os.path.basename(self.model_reference),
        }


def english_profile(model_reference: str) -> LanguageProfile:
    return LanguageProfile("en", ENGLISH_VOCABULARY, ENGLISH_ABBREVIATIONS, model_reference)


def _profile_from_dict(name: str, raw: Dict, base_dir: str) -> LanguageProfile:
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"Profile {name!r} must be an object")
    vocabulary = raw.get("vocabulary")
    if not isinstance(vocabulary, list) or not vocabulary or not all(isinstance(v, str) for v in vocabulary):
        raise InvalidConfiguration(f"Profile {name!r}: vocabulary must be a non-empty list of strings")
    abbreviations = raw.get("abbreviations") or {}
    if not isinstance(abbreviations, dict):
        raise InvalidConfiguration(f"Profile {name!r}: abbreviations must be an object")
    model = raw.get("model") or ""
    if model and not os.path.isabs(model):
        model = os.path.join(base_dir, model)
    return LanguageProfile(name, tuple(vocabulary), abbreviations, model)


def load_profiles(
    default_model_path: str,
    profiles_path: Optional[str] = None,
) -> Dict[str, LanguageProfile]:
    """
    Build the profile table: built-in English plus any profiles in `profiles_path`.

    A profile in the file with the same name replaces the built-in one, so there is
    at most one profile per language.
    """
    profiles: Dict[str, LanguageProfile] = {"en": english_profile(default_model_path)}
    if not profiles_path:
        return profiles
    if not os.path.isfile(profiles_path):
        raise InvalidConfiguration(f"Profiles file not found: {profiles_path}")
    try:
        with open(profiles_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidConfiguration(f"Profiles file is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidConfiguration("Profiles file must map language names to profiles")

    base_dir = os.path.dirname(os.path.abspath(profiles_path))
    for name, raw in data.items():
        profiles[name] = _profile_from_dict(name, raw, base_dir)
    logger.info("Loaded %d language profiles from %s", len(data), profiles_path)
    return profiles


def profile_names(profiles: Mapping[str, LanguageProfile]) -> Sequence[str]:
    return sorted(profiles)
