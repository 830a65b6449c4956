"""
Shared pytest fixtures.

Provides:
- a small hierarchical catalog + flat brochure catalog written to tmp_path
- Settings pointing the durable store at tmp_path, with zero media retry delay
- an Orchestrator wired to a StubDeliveryAdapter
"""
import json
from pathlib import Path

import pytest

from posgradobot.config import Settings
from posgradobot.core.catalog import load_brochure_catalog, load_catalog
from posgradobot.core.delivery import StubDeliveryAdapter
from posgradobot.core.flow_engine import FlowEngine
from posgradobot.core.flows import build_graph
from posgradobot.core.matching import MatchingEngine
from posgradobot.core.messages import Messages
from posgradobot.core.orchestrator import Orchestrator
from posgradobot.state import session_store
from posgradobot.storage.state_store import StateStore

TRIBUTACION_PDF = "https://example.edu/fcc/tributacion.pdf"
DOCTORADO_FCC_PDF = "https://example.edu/fcc/doctorado.pdf"
QUIMICA_PDF = "https://example.edu/fiq/quimica.pdf"
SISTEMAS_PDF = "https://example.edu/fiis/sistemas.pdf"
FINANZAS_PDF = "https://example.edu/fce/finanzas.pdf"

CATALOG = {
    "facultades": {
        "1": {
            "nombre": "Facultad de Ciencias Contables",
            "codigo": "FCC",
            "maestrias": {
                "1": {"nombre": "Maestría en Tributación", "descripcion": "Normativa tributaria.", "brochure": TRIBUTACION_PDF},
                "2": {"nombre": "Maestría en Gestión Pública", "descripcion_archivo": "desc/gestion.txt", "brochure": "not-a-url"},
            },
            "doctorados": {
                "1": {"nombre": "Doctorado en Ciencias Contables", "descripcion": "Investigación contable.", "brochure": DOCTORADO_FCC_PDF},
            },
        },
        "2": {
            "nombre": "Facultad de Ingeniería Química",
            "codigo": "FIQ",
            "maestrias": {
                "1": {"nombre": "Maestría en Ingeniería Química", "descripcion": "Procesos químicos.", "brochure": QUIMICA_PDF},
            },
        },
    }
}

BROCHURES = {
    "facultades": {
        "FIIS": {
            "nombre": "Facultad de Ingeniería Industrial y de Sistemas",
            "programas": [
                {"nombre": "Maestría en Ingeniería de Sistemas", "brochure": SISTEMAS_PDF},
                {"nombre": "Doctorado en Ingeniería Industrial", "brochure": ""},
            ],
        },
        "FCE": {
            "nombre": "Facultad de Ciencias Económicas",
            "programas": [
                {"nombre": "Maestría en Finanzas", "brochure": FINANZAS_PDF},
            ],
        },
        "FCC": {
            "nombre": "Facultad de Ciencias Contables",
            "programas": [
                {"nombre": "Maestría en Gestión Pública", "brochure": "ftp://example.edu/gp.pdf"},
                {"nombre": "Maestría en Tributación", "brochure": TRIBUTACION_PDF},
            ],
        },
    }
}


@pytest.fixture(autouse=True)
def clean_sessions():
    session_store.reset_memory()
    yield
    session_store.reset_memory()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    (root / "desc").mkdir(parents=True)
    (root / "facultades.json").write_text(json.dumps(CATALOG, ensure_ascii=False), encoding="utf-8")
    (root / "programas.json").write_text(json.dumps(BROCHURES, ensure_ascii=False), encoding="utf-8")
    (root / "desc" / "gestion.txt").write_text("Gestión del Estado.", encoding="utf-8")
    (root / "desc" / "info.txt").write_text("Informes: posgrado@example.edu", encoding="utf-8")
    return root


@pytest.fixture
def settings(data_dir: Path, tmp_path: Path) -> Settings:
    return Settings(
        DATA_DIR=data_dir,
        DB_PATH=tmp_path / "local_db.json",
        DELIVERY_MODE="stub",
        MEDIA_RETRY_ATTEMPTS=3,
        MEDIA_RETRY_DELAY=0,
        REDIS_URL=None,
    )


@pytest.fixture
def catalog(data_dir: Path):
    return load_catalog(data_dir / "facultades.json", descriptions_dir=data_dir)


@pytest.fixture
def brochures(data_dir: Path):
    return load_brochure_catalog(data_dir / "programas.json")


@pytest.fixture
def store(settings: Settings) -> StateStore:
    return StateStore(settings.db_path)


@pytest.fixture
def messages(data_dir: Path) -> Messages:
    return Messages(data_dir)


@pytest.fixture
def engine(catalog, messages, store) -> FlowEngine:
    return FlowEngine(build_graph(catalog, messages), store, services={"catalog": catalog, "messages": messages})


@pytest.fixture
def adapter() -> StubDeliveryAdapter:
    return StubDeliveryAdapter()


@pytest.fixture
def bot(engine, adapter, brochures, settings) -> Orchestrator:
    return Orchestrator(engine, adapter, MatchingEngine(brochures), settings)
