# posgradobot/core/catalog.py
"""
In-memory program catalog.

Two documents feed it, both loaded once at startup:

 - the browse catalog (facultades.json), hierarchical:
     {"facultades": {"<id>": {"nombre", "codigo", "maestrias": {"<id>": {...}},
                              "doctorados": {...}, "especialidades": {...}}}}
 - the brochure catalog (programas.json), flat per faculty:
     {"facultades": {"<code>": {"nombre", "brochure"?, "programas": [{"nombre", "brochure"}]}}}

A missing or unreadable document yields an empty index; callers get an empty
menu or a NotFound match instead of an exception.
"""
import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlparse

from posgradobot.core.messages import read_text
from posgradobot.core.normalizer import normalize, tokenize

logger = logging.getLogger("posgradobot.core.catalog")

DEFAULT_DESCRIPTION = "No disponible."


class ProgramKind(str, enum.Enum):
    MAESTRIA = "maestria"
    DOCTORADO = "doctorado"
    ESPECIALIDAD = "especialidad"

    @property
    def collection(self) -> str:
        """Key of this kind in the hierarchical catalog document."""
        return {
            ProgramKind.MAESTRIA: "maestrias",
            ProgramKind.DOCTORADO: "doctorados",
            ProgramKind.ESPECIALIDAD: "especialidades",
        }[self]

    @classmethod
    def detect(cls, text: str) -> Optional["ProgramKind"]:
        """Guess the kind from a free-text program name ("Maestría en ...")."""
        normalized = normalize(text)
        for kind in cls:
            if kind.value in normalized:
                return kind
        return None


class Description:
    """
    Loaded(text) | Deferred(loader). A deferred loader runs at most once and the
    result is cached for the life of the process.
    """

    __slots__ = ("_text", "_loader")

    def __init__(self, text: Optional[str] = None, loader: Optional[Callable[[], str]] = None):
        if (text is None) == (loader is None):
            raise ValueError("Description needs exactly one of text or loader")
        self._text = text
        self._loader = loader

    @classmethod
    def loaded(cls, text: str) -> "Description":
        return cls(text=text)

    @classmethod
    def deferred(cls, loader: Callable[[], str]) -> "Description":
        return cls(loader=loader)

    @property
    def is_loaded(self) -> bool:
        return self._text is not None

    def resolve(self) -> str:
        if self._text is None:
            self._text = self._loader() or ""
            self._loader = None
        return self._text


def valid_brochure(url: Optional[str]) -> Optional[str]:
    """Return the URL if it is a usable http(s) link, otherwise None."""
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return url


@dataclass
class Program:
    id: str
    name: str
    kind: ProgramKind
    description: Description = field(default_factory=lambda: Description.loaded(""))
    brochure: Optional[str] = None
    normalized_name: str = field(init=False)
    tokens: List[str] = field(init=False)

    def __post_init__(self):
        self.brochure = valid_brochure(self.brochure)
        self.normalized_name = normalize(self.name)
        self.tokens = tokenize(self.name)


@dataclass
class Faculty:
    id: str
    name: str
    code: Optional[str] = None
    # faculty-wide brochure, used when no program matched
    brochure: Optional[str] = None
    programs: Dict[ProgramKind, List[Program]] = field(default_factory=dict)
    # document order across kinds
    ordered: List[Program] = field(default_factory=list)

    def __post_init__(self):
        self.brochure = valid_brochure(self.brochure)

    def add(self, program: Program) -> bool:
        bucket = self.programs.setdefault(program.kind, [])
        if any(p.id == program.id for p in bucket):
            logger.warning(
                "Duplicate %s id %s in faculty %s; keeping the first one", program.kind.value, program.id, self.id
            )
            return False
        bucket.append(program)
        self.ordered.append(program)
        return True

    def programs_of(self, kind: ProgramKind) -> List[Program]:
        return list(self.programs.get(kind, []))

    def first_with_brochure(self) -> Optional[Program]:
        return next((p for p in self.ordered if p.brochure), None)


class CatalogIndex:
    """
    Immutable-after-build index over faculties and programs.

    Lookups:
     - get_faculty(id) / find_faculty(hint)
     - find_exact(text): first program whose normalized name equals the text
     - score_candidates(tokens): token-overlap score for every program
    """

    def __init__(self, faculties: Optional[List[Faculty]] = None, source: Optional[str] = None):
        self.source = source
        self._faculties: List[Faculty] = list(faculties or [])
        self._by_id: Dict[str, Faculty] = {}
        self._by_code: Dict[str, Faculty] = {}
        self._by_name: Dict[str, Faculty] = {}
        for faculty in self._faculties:
            self._by_id.setdefault(faculty.id, faculty)
            if faculty.code:
                self._by_code.setdefault(normalize(faculty.code), faculty)
            self._by_name.setdefault(normalize(faculty.name), faculty)

    def __len__(self) -> int:
        return len(self._faculties)

    @property
    def is_empty(self) -> bool:
        return not self._faculties

    @property
    def faculties(self) -> List[Faculty]:
        return list(self._faculties)

    def get_faculty(self, faculty_id: Optional[str]) -> Optional[Faculty]:
        if faculty_id is None:
            return None
        return self._by_id.get(str(faculty_id))

    def faculties_with(self, kind: ProgramKind) -> List[Faculty]:
        return [f for f in self._faculties if f.programs.get(kind)]

    def iter_programs(self) -> Iterator[Tuple[Faculty, Program]]:
        for faculty in self._faculties:
            for program in faculty.ordered:
                yield faculty, program

    def find_exact(self, text: str, require_brochure: bool = True) -> Optional[Tuple[Faculty, Program]]:
        target = normalize(text)
        if not target:
            return None
        for faculty, program in self.iter_programs():
            if program.normalized_name != target:
                continue
            if require_brochure and not program.brochure:
                continue
            return faculty, program
        return None

    def score_candidates(self, query_tokens: List[str]) -> Iterator[Tuple[Faculty, Program, int]]:
        """
        Yield (faculty, program, score) in catalog order. A query token counts
        once if it is a substring of, or contains, any token of the program name.
        """
        for faculty, program in self.iter_programs():
            score = 0
            for word in query_tokens:
                if any(word in token or token in word for token in program.tokens):
                    score += 1
            yield faculty, program, score

    def find_faculty(self, hint: Optional[str]) -> Optional[Faculty]:
        """
        Resolve a faculty from an id, a short code or a (partial) display name.
        Name matching is a bidirectional substring test on normalized text.
        """
        if not hint:
            return None
        by_id = self._by_id.get(str(hint).strip())
        if by_id:
            return by_id
        target = normalize(hint)
        if not target:
            return None
        if target in self._by_code:
            return self._by_code[target]
        if target in self._by_name:
            return self._by_name[target]
        for name, faculty in self._by_name.items():
            if target in name or name in target:
                return faculty
        return None


def _read_document(path: Path, label: str) -> Optional[Dict[str, Any]]:
    if not path.exists():
        logger.warning("%s not found at %s; using an empty catalog", label, path)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Could not read %s at %s: %s", label, path, exc)
        return None
    if not isinstance(data, dict):
        logger.error("%s at %s is not a JSON object", label, path)
        return None
    return data


def _description_for(entry: Dict[str, Any], base_dir: Optional[Path]) -> Description:
    text = entry.get("descripcion")
    if isinstance(text, str):
        return Description.loaded(text)
    rel_path = entry.get("descripcion_archivo")
    if rel_path and base_dir is not None:
        target = base_dir / rel_path
        return Description.deferred(lambda: read_text(target, DEFAULT_DESCRIPTION))
    return Description.loaded(DEFAULT_DESCRIPTION)


def load_catalog(path: Path, descriptions_dir: Optional[Path] = None) -> CatalogIndex:
    """
    Build the browse catalog from the hierarchical document.
    Descriptions given as files are read lazily on first display.
    """
    data = _read_document(Path(path), "Catalog") or {}
    faculties: List[Faculty] = []
    for faculty_id, raw in (data.get("facultades") or {}).items():
        if not isinstance(raw, dict) or not raw.get("nombre"):
            logger.warning("Skipping malformed faculty entry %s", faculty_id)
            continue
        faculty = Faculty(id=str(faculty_id), name=raw["nombre"], code=raw.get("codigo"))
        for kind in ProgramKind:
            for program_id, entry in (raw.get(kind.collection) or {}).items():
                if not isinstance(entry, dict) or not entry.get("nombre"):
                    continue
                faculty.add(
                    Program(
                        id=str(program_id),
                        name=entry["nombre"],
                        kind=kind,
                        description=_description_for(entry, descriptions_dir),
                        brochure=entry.get("brochure"),
                    )
                )
        faculties.append(faculty)

    index = CatalogIndex(faculties, source=str(path))
    logger.info("Loaded catalog %s: %d faculties", path, len(index))
    return index


def load_brochure_catalog(path: Path) -> CatalogIndex:
    """
    Build the matching catalog from the flat brochure document. Program kinds are
    inferred from the names; unknown names are filed as maestrias.
    """
    data = _read_document(Path(path), "Brochure catalog") or {}
    faculties: List[Faculty] = []
    for code, raw in (data.get("facultades") or {}).items():
        if not isinstance(raw, dict):
            continue
        faculty = Faculty(
            id=str(code), name=raw.get("nombre") or str(code), code=str(code), brochure=raw.get("brochure")
        )
        counters: Dict[ProgramKind, int] = {}
        for entry in raw.get("programas") or []:
            if not isinstance(entry, dict) or not entry.get("nombre"):
                continue
            kind = ProgramKind.detect(entry["nombre"]) or ProgramKind.MAESTRIA
            counters[kind] = counters.get(kind, 0) + 1
            faculty.add(
                Program(
                    id=str(entry.get("id") or counters[kind]),
                    name=entry["nombre"],
                    kind=kind,
                    brochure=entry.get("brochure"),
                )
            )
        faculties.append(faculty)

    index = CatalogIndex(faculties, source=str(path))
    total = sum(1 for _ in index.iter_programs())
    logger.info("Loaded brochure catalog %s: %d faculties, %d programs", path, len(index), total)
    return index
