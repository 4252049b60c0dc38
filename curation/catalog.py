"""Technique taxonomy and instructor catalog used by the evaluator."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from core import InstructorTier
from utils.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


def normalize_technique_name(name: Optional[str]) -> str:
    """Lowercase, strip punctuation, join words with underscores."""
    text = re.sub(r"[^a-z0-9\s_-]", "", str(name or "").lower())
    return re.sub(r"[\s_-]+", "_", text).strip("_")


class TechniqueEntry(BaseModel):
    name: str
    category: str = "other"
    gi_type: str = "both"
    aliases: List[str] = Field(default_factory=list)
    target_count: Optional[int] = None
    fundamental: bool = False


class InstructorEntry(BaseModel):
    name: str
    tier: InstructorTier = InstructorTier.HIGH_QUALITY
    credibility: Optional[float] = None
    boost_multiplier: float = 1.0
    channel_ids: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)


DEFAULT_TECHNIQUES: List[Dict] = [
    {"name": "Armbar", "category": "submission", "aliases": ["arm bar", "juji gatame"], "fundamental": True},
    {"name": "Triangle Choke", "category": "submission", "aliases": ["triangle"], "fundamental": True},
    {"name": "Kimura", "category": "submission", "aliases": ["kimura lock"], "fundamental": True},
    {"name": "Rear Naked Choke", "category": "submission", "aliases": ["rnc", "mata leao"], "fundamental": True},
    {"name": "Guillotine", "category": "submission", "aliases": ["guillotine choke"]},
    {"name": "Darce Choke", "category": "submission", "aliases": ["d'arce", "darce"]},
    {"name": "Heel Hook", "category": "submission", "gi_type": "nogi", "aliases": ["inside heel hook"]},
    {"name": "Kneebar", "category": "submission", "aliases": ["knee bar"]},
    {"name": "Bow And Arrow Choke", "category": "submission", "gi_type": "gi", "aliases": ["bow and arrow"]},
    {"name": "Cross Collar Choke", "category": "submission", "gi_type": "gi", "aliases": ["collar choke"]},
    {"name": "Closed Guard", "category": "guard", "fundamental": True},
    {"name": "Half Guard", "category": "guard", "fundamental": True},
    {"name": "Butterfly Guard", "category": "guard"},
    {"name": "De La Riva Guard", "category": "guard", "gi_type": "gi", "aliases": ["de la riva", "dlr"]},
    {"name": "Spider Guard", "category": "guard", "gi_type": "gi"},
    {"name": "X Guard", "category": "guard", "aliases": ["x-guard"]},
    {"name": "Single Leg X", "category": "guard", "aliases": ["ashi garami", "slx"]},
    {"name": "Berimbolo", "category": "sweep"},
    {"name": "Scissor Sweep", "category": "sweep", "fundamental": True},
    {"name": "Hip Bump Sweep", "category": "sweep", "fundamental": True},
    {"name": "Knee Cut Pass", "category": "passing", "aliases": ["knee slice", "knee cut"], "fundamental": True},
    {"name": "Torreando Pass", "category": "passing", "aliases": ["toreando", "bullfighter pass"]},
    {"name": "Leg Drag", "category": "passing"},
    {"name": "Body Lock Pass", "category": "passing", "aliases": ["body lock"]},
    {"name": "Mount Escape", "category": "escape", "aliases": ["escape mount", "upa"], "fundamental": True},
    {"name": "Side Control Escape", "category": "escape", "aliases": ["escape side control"], "fundamental": True},
    {"name": "Back Escape", "category": "escape", "aliases": ["escape back control"]},
    {"name": "Back Take", "category": "control", "aliases": ["taking the back", "back control"]},
    {"name": "Double Leg Takedown", "category": "takedown", "aliases": ["double leg"]},
    {"name": "Single Leg Takedown", "category": "takedown", "aliases": ["single leg"]},
]

DEFAULT_INSTRUCTORS: List[Dict] = [
    {"name": name, "tier": "elite", "credibility": 85.0}
    for name in (
        "Gordon Ryan", "John Danaher", "Lachlan Giles", "Craig Jones",
        "Mikey Musumeci", "Rafael Mendes", "Marcelo Garcia", "Bernardo Faria",
        "Garry Tonon", "Eddie Cummings", "Keenan Cornelius", "Ryan Hall",
        "Caio Terra", "Andre Galvao", "Roger Gracie",
    )
] + [
    {"name": name, "tier": "high_quality", "credibility": 70.0}
    for name in (
        "Jon Thomas", "Priit Mihkelson", "Stephan Kesting", "Jason Scully",
        "Rob Biernacki", "Tom DeBlass", "Firas Zahabi", "Nicky Ryan",
        "Giancarlo Bodoni", "Mica Galvao", "Jozef Chen", "Dean Lister",
    )
]

KNOWN_GYM_MARKERS = ("gracie", "atos", "alliance", "checkmat", "unity", "b-team", "new wave")
BRAZILIAN_NAME_MARKERS = ("da silva", "dos santos", "de jesus", "oliveira", "mendes", "ribeiro")

_TIER_CREDIBILITY = {
    InstructorTier.ELITE: 85.0,
    InstructorTier.HIGH_QUALITY: 70.0,
    InstructorTier.UNKNOWN: 40.0,
}


class Catalog:
    """Lookup tables for techniques and instructors."""

    def __init__(
        self,
        techniques: Iterable[Union[TechniqueEntry, Dict]] = (),
        instructors: Iterable[Union[InstructorEntry, Dict]] = (),
        *,
        default_target: int = 50,
    ) -> None:
        self.default_target = int(default_target)
        self._techniques: Dict[str, TechniqueEntry] = {}
        self._technique_aliases: Dict[str, str] = {}
        for raw in techniques:
            entry = raw if isinstance(raw, TechniqueEntry) else TechniqueEntry.model_validate(raw)
            key = normalize_technique_name(entry.name)
            self._techniques[key] = entry
            for alias in [entry.name] + entry.aliases:
                self._technique_aliases[normalize_technique_name(alias)] = key

        self._instructors: Dict[str, InstructorEntry] = {}
        self._instructor_channels: Dict[str, str] = {}
        for raw in instructors:
            entry = raw if isinstance(raw, InstructorEntry) else InstructorEntry.model_validate(raw)
            key = entry.name.lower()
            self._instructors[key] = entry
            for alias in entry.aliases:
                self._instructors[alias.lower()] = entry
            for channel_id in entry.channel_ids:
                self._instructor_channels[channel_id] = key

    @classmethod
    def default(cls, default_target: int = 50) -> "Catalog":
        return cls(DEFAULT_TECHNIQUES, DEFAULT_INSTRUCTORS, default_target=default_target)

    @classmethod
    def from_file(cls, path: Union[str, Path], default_target: int = 50) -> "Catalog":
        """Load ``{"techniques": [...], "instructors": [...]}`` from JSON."""
        file_path = Path(path)
        try:
            payload = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Cannot load catalog file: {file_path}", {"error": str(exc)}) from exc
        techniques = payload.get("techniques") or DEFAULT_TECHNIQUES
        instructors = payload.get("instructors") or DEFAULT_INSTRUCTORS
        logger.info(f"[Catalog] Loaded {len(techniques)} techniques, {len(instructors)} instructors from {file_path}")
        return cls(techniques, instructors, default_target=int(payload.get("default_target") or default_target))

    # ---- techniques --------------------------------------------------------

    @property
    def techniques(self) -> List[TechniqueEntry]:
        return list(self._techniques.values())

    def find_technique(self, name: Optional[str]) -> Optional[TechniqueEntry]:
        key = normalize_technique_name(name)
        if not key:
            return None
        canonical = self._technique_aliases.get(key)
        return self._techniques.get(canonical) if canonical else None

    def match_technique_in_text(self, text: str) -> Optional[TechniqueEntry]:
        """Longest alias that appears in the text (word-bounded)."""
        normalized = f"_{normalize_technique_name(text)}_"
        best: Optional[str] = None
        for alias in self._technique_aliases:
            if f"_{alias}_" in normalized and (best is None or len(alias) > len(best)):
                best = alias
        return self._techniques[self._technique_aliases[best]] if best else None

    def target_for(self, technique_name: Optional[str]) -> int:
        entry = self.find_technique(technique_name)
        if entry and entry.target_count:
            return int(entry.target_count)
        return self.default_target

    # ---- instructors -------------------------------------------------------

    def find_instructor(self, name: Optional[str] = None, channel_id: Optional[str] = None) -> Optional[InstructorEntry]:
        if name:
            entry = self._instructors.get(str(name).strip().lower())
            if entry:
                return entry
        if channel_id and channel_id in self._instructor_channels:
            return self._instructors.get(self._instructor_channels[channel_id])
        return None

    def detect_instructor_in_text(self, text: str, tier: Optional[InstructorTier] = None) -> Optional[InstructorEntry]:
        lowered = str(text or "").lower()
        for key, entry in self._instructors.items():
            if tier is not None and entry.tier != tier:
                continue
            if key and key in lowered:
                return entry
        return None

    def tier_for(self, name: Optional[str]) -> InstructorTier:
        entry = self.find_instructor(name)
        return entry.tier if entry else InstructorTier.UNKNOWN

    def base_credibility(self, entry: InstructorEntry) -> float:
        if entry.credibility is not None:
            return float(entry.credibility)
        return _TIER_CREDIBILITY.get(entry.tier, 40.0)

    def names_for_tier(self, tier: InstructorTier) -> List[str]:
        return sorted({entry.name for entry in self._instructors.values() if entry.tier == tier})
