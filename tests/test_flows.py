import pytest

from posgradobot.config import BASE_DIR
from posgradobot.core.catalog import CatalogIndex, load_catalog
from posgradobot.core.flow_engine import FlowEngine
from posgradobot.core.flows import (
    CALENDAR_URL,
    EVENTS,
    GOODBYE,
    INVALID_OPTION,
    LOST_FACULTY,
    WELCOME_IMAGE,
    build_graph,
)
from posgradobot.core.messages import Messages

from tests.conftest import TRIBUTACION_PDF


def test_graph_is_valid_and_fully_reachable(engine):
    graph = engine.graph
    assert graph.problems() == []
    assert graph.reachable() == set(graph.nodes)
    assert graph.terminals == {GOODBYE, "calendario"}
    for node_id in EVENTS.values():
        assert node_id in graph


def test_graph_over_the_shipped_data():
    data = BASE_DIR / "data"
    catalog = load_catalog(data / "facultades.json", descriptions_dir=data)
    assert len(catalog) == 12

    graph = build_graph(catalog, Messages(data))
    assert graph.problems() == []
    faculty_list = graph.get("facultades_maestria").prompt[2]
    assert "🔟 Facultad de Ciencias Económicas" in faculty_list
    assert "1️⃣2️⃣ Facultad de Ciencias de la Educación" in faculty_list
    assert graph.get("facultades_doctorado").prompt[2].count("\n") == 6


def test_empty_catalog_still_builds_a_valid_graph():
    graph = build_graph(CatalogIndex(), Messages())
    assert "facultades_maestria" not in graph
    assert graph.get("programas").edges == ("menu",)


@pytest.mark.asyncio
async def test_welcome_parks_on_menu(engine):
    turn = await engine.enter("bienvenida", "u1")
    assert turn.next_node == "menu"
    assert any(s.media == WELCOME_IMAGE for s in turn.segments)
    assert turn.texts[-1].startswith("📋 *MENÚ PRINCIPAL*")


@pytest.mark.asyncio
async def test_menu_routes(engine):
    turn = await engine.advance("menu", "u1", "1")
    assert turn.next_node == "programas"

    turn = await engine.advance("menu", "u1", "3")
    assert turn.terminal
    assert CALENDAR_URL in turn.texts

    turn = await engine.advance("menu", "u1", "7")
    assert turn.next_node == "menu"


@pytest.mark.asyncio
async def test_browse_maestria_with_brochure(engine, store):
    turn = await engine.advance("programas", "u1", "1")
    assert turn.next_node == "facultades_maestria"
    assert "1️⃣ Facultad de Ciencias Contables\n2️⃣ Facultad de Ingeniería Química" in turn.texts[-1]

    turn = await engine.advance("facultades_maestria", "u1", "1")
    assert turn.next_node == "seleccion_maestria"
    assert "1️⃣ Maestría en Tributación\n2️⃣ Maestría en Gestión Pública" in turn.texts[0]
    assert (await store.get("u1"))["facultadId"] == "1"

    turn = await engine.advance("seleccion_maestria", "u1", "1")
    assert turn.texts[:3] == ["🎓 *Maestría en Tributación*", "Normativa tributaria.", "Informes: posgrado@example.edu"]
    assert turn.segments[3].media == TRIBUTACION_PDF
    assert turn.next_node == "otro_maestria"
    assert await store.get("u1") is None


@pytest.mark.asyncio
async def test_browse_program_without_brochure_uses_deferred_description(engine):
    await engine.advance("facultades_maestria", "u1", "1")
    turn = await engine.advance("seleccion_maestria", "u1", "2")
    assert "Gestión del Estado." in turn.texts
    assert "📄 Brochure no disponible para esta maestría." in turn.texts
    assert all(s.media is None for s in turn.segments)


@pytest.mark.asyncio
async def test_browse_doctorado(engine):
    turn = await engine.advance("programas", "u1", "2")
    assert turn.next_node == "facultades_doctorado"
    await engine.advance("facultades_doctorado", "u1", "1")
    turn = await engine.advance("seleccion_doctorado", "u1", "1")
    assert turn.texts[0] == "🎓 *Doctorado en Ciencias Contables*"
    assert turn.next_node == "otro_doctorado"


@pytest.mark.asyncio
async def test_faculty_list_rejects_out_of_range_and_text(engine):
    turn = await engine.advance("facultades_maestria", "u1", "9")
    assert turn.texts[0] == INVALID_OPTION
    assert turn.next_node == "facultades_maestria"

    turn = await engine.advance("facultades_maestria", "u1", "abc")
    assert turn.texts[0] == INVALID_OPTION
    assert turn.next_node == "facultades_maestria"


@pytest.mark.asyncio
async def test_superscript_digits_are_rejected_not_errors(engine):
    turn = await engine.advance("facultades_maestria", "u1", "²")
    assert turn.texts[0] == INVALID_OPTION
    assert turn.next_node == "facultades_maestria"

    await engine.advance("facultades_maestria", "u1", "1")
    turn = await engine.advance("seleccion_maestria", "u1", "¹")
    assert turn.texts[0] == INVALID_OPTION
    assert turn.next_node == "seleccion_maestria"


@pytest.mark.asyncio
async def test_zero_goes_back(engine, store):
    turn = await engine.advance("facultades_maestria", "u1", "0")
    assert turn.next_node == "programas"

    await engine.advance("facultades_maestria", "u1", "2")
    turn = await engine.advance("seleccion_maestria", "u1", "0")
    assert turn.next_node == "facultades_maestria"
    assert await store.get("u1") is None


@pytest.mark.asyncio
async def test_lost_faculty_redirects_to_faculty_list(engine):
    turn = await engine.advance("seleccion_maestria", "u1", "1")
    assert turn.texts[0] == LOST_FACULTY
    assert turn.next_node == "facultades_maestria"


@pytest.mark.asyncio
async def test_program_out_of_range_keeps_the_faculty(engine, store):
    await engine.advance("facultades_maestria", "u1", "2")
    turn = await engine.advance("seleccion_maestria", "u1", "5")
    assert turn.texts[0] == INVALID_OPTION
    assert turn.next_node == "seleccion_maestria"
    assert (await store.get("u1"))["facultadId"] == "2"


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["1", "si", "Sí", "y", "YES"])
async def test_browse_again_yes_loops_back(engine, reply):
    turn = await engine.advance("otro_maestria", "u1", reply)
    assert turn.next_node == "facultades_maestria"
    assert not turn.terminal


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["2", "no", "NO", "n", "nop"])
async def test_browse_again_no_ends(engine, reply):
    turn = await engine.advance("otro_maestria", "u1", reply)
    assert turn.terminal
    assert turn.texts == ["👋 ¡Gracias por comunicarte con nosotros! Que tengas un excelente día."]


@pytest.mark.asyncio
async def test_browse_again_other_reply_reprompts(engine):
    turn = await engine.advance("otro_doctorado", "u1", "tal vez")
    assert turn.next_node == "otro_doctorado"
    assert turn.texts[1].startswith("¿Necesita consultar otro doctorado?")


@pytest.mark.asyncio
async def test_admission_pass_through_nodes(engine):
    turn = await engine.advance("admision", "u1", "1")
    assert turn.texts[0] == "Requisitos no disponibles."
    assert turn.next_node == "mas_info_admision"

    turn = await engine.advance("admision", "u1", "3")
    assert turn.segments[1].file_name == "Guia_de_Postulante.pdf"
    assert turn.next_node == "mas_info_admision"

    turn = await engine.advance("mas_info_admision", "u1", "1")
    assert turn.next_node == "admision"

    turn = await engine.advance("mas_info_admision", "u1", "2")
    assert turn.terminal


@pytest.mark.asyncio
async def test_thesis_workshop_ends_on_more_info(engine):
    turn = await engine.enter(EVENTS["TALLER_TESIS_FLOW"], "u1")
    assert turn.texts[0] == "*¡Bienvenido al Taller de Tesis!*"
    assert turn.next_node == "mas_info_admision"


async def _run_contact(engine, user_id, answers):
    turn = await engine.enter(EVENTS["CONTACTO_FLOW"], user_id)
    node, session = turn.next_node, turn.session
    for answer in answers:
        turn = await engine.advance(node, user_id, answer, session=session)
        node, session = turn.next_node, turn.session
    return turn


@pytest.mark.asyncio
async def test_contact_end_to_end(engine, store):
    turn = await _run_contact(engine, "51999", ["1", "2", "Jane Doe", "jane@x.com", "999999999", "hello"])
    assert turn.terminal
    assert turn.session == {"solicitudId": 1}
    assert turn.texts == [
        "✅ Gracias. Tu solicitud fue registrada y un asesor te contactará pronto.\nSu ID de solicitud es: 1"
    ]

    contacts = await store.list_contacts()
    assert len(contacts) == 1
    record = contacts[0]
    assert record["usuarioId"] == "51999"
    assert record["tipoConsulta"] == "1"
    assert record["canal"] == "2"
    assert record["nombre"] == "Jane Doe"
    assert record["correo"] == "jane@x.com"
    assert record["telefono"] == "999999999"
    assert record["mensaje"] == "hello"

    turn = await _run_contact(engine, "51888", ["5", "1", "Ana", "ana@x.com", "988", "hola"])
    assert turn.texts[-1].endswith("Su ID de solicitud es: 2")


@pytest.mark.asyncio
async def test_contact_rejects_unknown_type_and_normalizes_email(engine):
    turn = await engine.enter("contacto_tipo", "u1")
    turn = await engine.advance("contacto_tipo", "u1", "7", session=turn.session)
    assert turn.next_node == "contacto_tipo"

    turn = await engine.advance("contacto_correo", "u1", "  Jane@X.COM ", session={"nombre": "Jane"})
    assert turn.session["correo"] == "jane@x.com"
    assert turn.next_node == "contacto_telefono"
