# posgradobot/core/flows.py
"""
The conversation graph of the graduate-school assistant.

    bienvenida -> menu -> programas -> facultades_<kind> -> seleccion_<kind> -> otro_<kind>
                                                 ^                                   |
                                                 +------------- "1 / si" ------------+
                       -> admision -> requisitos|fechas|guia|costos -> mas_info_admision
                       -> calendario (end)
                       -> taller_tesis -> mas_info_admision
                       -> contacto_tipo -> ... -> contacto_mensaje (end)
    any "no" / goodbye keyword -> despedida (end)

Faculty option lists are built from the catalog when the graph is built; the
program list of a faculty is rebuilt from the faculty stored in the user's
durable state, so it survives restarts between two messages.
"""
import logging
from typing import Dict, List, Tuple

from posgradobot.core.catalog import CatalogIndex, Faculty, ProgramKind
from posgradobot.core.errors import LookupMiss, ValidationFailure
from posgradobot.core.flow_engine import (
    TERMINAL,
    FlowContext,
    FlowGraph,
    FlowNode,
    Segment,
    choice,
    goto,
    is_yes,
    numbered,
    numeric_choice,
    routes,
    yes_no,
)
from posgradobot.core.messages import Messages

logger = logging.getLogger("posgradobot.core.flows")

ENTRY = "bienvenida"
GOODBYE = "despedida"

EXIT_KEYWORDS = frozenset(["adios", "bye", "chau"])

EVENTS: Dict[str, str] = {
    "WELCOME": "bienvenida",
    "MENU_FLOW": "menu",
    "PROGRAMAS_FLOW": "programas",
    "ADMISION_FLOW": "admision",
    "CALENDARIO_FLOW": "calendario",
    "TALLER_TESIS_FLOW": "taller_tesis",
    "CONTACTO_FLOW": "contacto_tipo",
}

WELCOME_IMAGE = "https://github.com/JeysonRG1804/brochure/raw/main/entrada.png"
SCHOOL_IMAGE = "https://posgrado.unac.edu.pe/img/escuela.jpg"
DATES_IMAGE = "https://github.com/JeysonRG1804/brochure/raw/main/fechasadmision.png"
GUIDE_PDF = "https://posgrado.unac.edu.pe/CHATBOT/Guia_de_Postulante.pdf"
THESIS_IMAGE = "https://github.com/JeysonRG1804/brochure/raw/main/tallertesis.png"
CALENDAR_URL = "https://posgrado.unac.edu.pe/admision/cronograma-academico-2025-i.html"

INVALID_OPTION = "❌ Opción inválida. Intente de nuevo."
LOST_FACULTY = "❌ Error: Información de facultad perdida. Regresando al menú."

# title, "una maestría", "otra maestría", menu label, "esta maestría"
KIND_COPY: Dict[ProgramKind, Tuple[str, str, str, str, str]] = {
    ProgramKind.MAESTRIA: ("MAESTRÍAS", "una maestría", "otra maestría", "Maestrías", "esta maestría"),
    ProgramKind.DOCTORADO: ("DOCTORADOS", "un doctorado", "otro doctorado", "Doctorados", "este doctorado"),
    ProgramKind.ESPECIALIDAD: (
        "ESPECIALIDADES",
        "una especialidad",
        "otra especialidad",
        "Especialidades",
        "esta especialidad",
    ),
}

DEFAULT_KINDS = [ProgramKind.MAESTRIA, ProgramKind.DOCTORADO]

CONTACT_TYPES = ("1", "2", "3", "4", "5")
CONTACT_CHANNELS = ("1", "2", "3", "4")


def faculties_node(kind: ProgramKind) -> str:
    return f"facultades_{kind.value}"


def selection_node(kind: ProgramKind) -> str:
    return f"seleccion_{kind.value}"


def another_node(kind: ProgramKind) -> str:
    return f"otro_{kind.value}"


def browse_kinds(catalog: CatalogIndex) -> List[ProgramKind]:
    return [kind for kind in ProgramKind if catalog.faculties_with(kind)]


def _programs_menu(kinds: List[ProgramKind]) -> str:
    lines = ["📚 *PROGRAMAS DE POSGRADO*"]
    if kinds:
        lines.append(numbered([KIND_COPY[k][3] for k in kinds]))
    lines.append("0️⃣ Volver al menú")
    return "\n".join(lines)


def _browse_nodes(kind: ProgramKind, catalog: CatalogIndex, info_text: str) -> List[FlowNode]:
    title, one, another, _label, this = KIND_COPY[kind]
    options: List[Faculty] = catalog.faculties_with(kind)
    list_id, select_id, again_id = faculties_node(kind), selection_node(kind), another_node(kind)

    async def pick_faculty(ctx: FlowContext) -> str:
        reply = ctx.reply.strip()
        if reply == "0":
            return "programas"
        position = int(reply)
        if not 1 <= position <= len(options):
            raise ValidationFailure(INVALID_OPTION)
        faculty = options[position - 1]
        await ctx.merge_state(facultadId=faculty.id, kind=kind.value)
        programs = faculty.programs_of(kind)
        ctx.say(
            "\n".join(
                [
                    f"📚 *{faculty.name}*",
                    f"Seleccione {one} para ver más detalles:",
                    numbered([p.name for p in programs]),
                    "0️⃣ Volver al listado de facultades",
                ]
            )
        )
        return select_id

    async def pick_program(ctx: FlowContext) -> str:
        reply = ctx.reply.strip()
        state = await ctx.get_state()
        faculty = catalog.get_faculty(state.get("facultadId"))
        programs = faculty.programs_of(kind) if faculty else []
        if not programs:
            raise LookupMiss(LOST_FACULTY, list_id)

        if reply == "0":
            await ctx.clear_state()
            return list_id

        position = int(reply)
        if not 1 <= position <= len(programs):
            raise ValidationFailure(INVALID_OPTION)

        program = programs[position - 1]
        ctx.say(f"🎓 *{program.name}*", program.description.resolve() or "Descripción no disponible", info_text)
        if program.brochure:
            ctx.send_media("📄 Aquí tienes el brochure:", program.brochure)
        else:
            ctx.say(f"📄 Brochure no disponible para {this}.")
        await ctx.clear_state()
        return again_id

    async def browse_again(ctx: FlowContext) -> str:
        return list_id if is_yes(ctx.reply) else GOODBYE

    return [
        FlowNode(
            id=list_id,
            prompt=[
                f"*{title} DE LA UNIVERSIDAD NACIONAL DEL CALLAO*",
                Segment("Estas son nuestras facultades:", media=SCHOOL_IMAGE),
                numbered([f.name for f in options]) + "\n0️⃣ Volver al menú principal",
            ],
            capture=True,
            validator=numeric_choice,
            handler=pick_faculty,
            edges=("programas", select_id),
            rejection=INVALID_OPTION,
        ),
        FlowNode(
            id=select_id,
            prompt=f"📩 Seleccione {one}:",
            capture=True,
            validator=numeric_choice,
            handler=pick_program,
            edges=(list_id, again_id),
            rejection=INVALID_OPTION,
            recovery=list_id,
        ),
        FlowNode(
            id=again_id,
            prompt=[
                f"¿Necesita consultar {another}?, digite el número de la acción a realizar",
                "1️⃣ *SI* 📜",
                "2️⃣ *NO*",
            ],
            capture=True,
            validator=yes_no,
            handler=browse_again,
            edges=(list_id, GOODBYE),
        ),
    ]


def _contact_nodes() -> List[FlowNode]:
    async def save_type(ctx: FlowContext) -> str:
        ctx.remember(tipoConsulta=ctx.reply.strip())
        return "contacto_canal"

    async def save_channel(ctx: FlowContext) -> str:
        ctx.remember(canal=ctx.reply.strip())
        return "contacto_nombre"

    async def save_name(ctx: FlowContext) -> str:
        ctx.remember(nombre=ctx.reply.strip())
        return "contacto_correo"

    async def save_email(ctx: FlowContext) -> str:
        ctx.remember(correo=ctx.reply.strip().lower())
        return "contacto_telefono"

    async def save_phone(ctx: FlowContext) -> str:
        ctx.remember(telefono=ctx.reply.strip())
        return "contacto_mensaje"

    async def submit(ctx: FlowContext) -> str:
        answers = ctx.session
        # set when the confirmation could not be delivered and the user resends
        contact = await ctx.get_contact(answers.get("solicitudId"))
        if contact is None:
            contact = await ctx.append_contact(
                {
                    "usuarioId": ctx.user_id,
                    "tipoConsulta": answers.get("tipoConsulta") or "No especificado",
                    "canal": answers.get("canal") or "No especificado",
                    "nombre": answers.get("nombre") or "No proporcionado",
                    "correo": answers.get("correo") or "No proporcionado",
                    "telefono": answers.get("telefono") or "No proporcionado",
                    "mensaje": ctx.reply,
                }
            )
        ctx.say(
            "✅ Gracias. Tu solicitud fue registrada y un asesor te contactará pronto.\n"
            f"Su ID de solicitud es: {contact.id}"
        )
        ctx.forget()
        ctx.remember(solicitudId=contact.id)
        return TERMINAL

    return [
        FlowNode(
            id="contacto_tipo",
            prompt=(
                "📋 *Formulario de contacto personalizado*\n"
                "¿Cuál es el tipo de consulta?\n"
                "1. Información académica\n2. Admisiones y becas\n3. Proceso de inscripción\n4. Documentación\n5. Otro"
            ),
            capture=True,
            validator=choice(*CONTACT_TYPES),
            handler=save_type,
            edges=("contacto_canal",),
        ),
        FlowNode(
            id="contacto_canal",
            prompt="¿Cuál es tu canal preferido para que te contactemos?\n1. WhatsApp\n2. Correo\n3. Teléfono\n4. Videollamada",
            capture=True,
            validator=choice(*CONTACT_CHANNELS),
            handler=save_channel,
            edges=("contacto_nombre",),
        ),
        FlowNode(
            id="contacto_nombre",
            prompt="👤 Por favor, escribe tu *nombre completo*:",
            capture=True,
            handler=save_name,
            edges=("contacto_correo",),
        ),
        FlowNode(
            id="contacto_correo",
            prompt="📧 Ahora escribe tu *correo electrónico*:",
            capture=True,
            handler=save_email,
            edges=("contacto_telefono",),
        ),
        FlowNode(
            id="contacto_telefono",
            prompt="📱 Tu *número de teléfono*:",
            capture=True,
            handler=save_phone,
            edges=("contacto_mensaje",),
        ),
        FlowNode(
            id="contacto_mensaje",
            prompt="✍️ Por último, escribe un *mensaje o detalle de tu consulta*:",
            capture=True,
            handler=submit,
            edges=(TERMINAL,),
        ),
    ]


def build_graph(catalog: CatalogIndex, messages: Messages) -> FlowGraph:
    kinds = browse_kinds(catalog)
    if not kinds:
        logger.warning("Catalog has no programs; the programs menu will only offer going back")

    programs_routes = {str(i): faculties_node(kind) for i, kind in enumerate(kinds, start=1)}
    programs_routes["0"] = "menu"

    more_admission = "mas_info_admision"
    graph = FlowGraph(entry=ENTRY, terminals=[GOODBYE, "calendario"])

    graph.add(
        FlowNode(
            id=ENTRY,
            prompt=[
                "🌟 *BIENVENIDO A LA ESCUELA DE POSGRADO DE LA UNIVERSIDAD NACIONAL DEL CALLAO* 🌟",
                "Aquí, la excelencia académica se combina con el compromiso y la vocación de servicio, "
                "formando líderes que impactan en la sociedad.",
                "*Una universidad con un rostro humano*, donde cada estudiante es parte de una comunidad "
                "que inspira, acompaña y fortalece.",
                "¡Es momento de crecer juntos!",
                Segment("BIENVENIDOS", media=WELCOME_IMAGE),
            ],
            edges=("menu",),
        )
    )
    graph.add(
        FlowNode(
            id="menu",
            prompt=messages.get("menu"),
            capture=True,
            validator=choice("1", "2", "3", "4", "5"),
            handler=routes(
                {"1": "programas", "2": "admision", "3": "calendario", "4": "taller_tesis", "5": "contacto_tipo"}
            ),
            edges=("programas", "admision", "calendario", "taller_tesis", "contacto_tipo"),
        )
    )
    graph.add(
        FlowNode(
            id="programas",
            prompt=messages.get("programas") if kinds == DEFAULT_KINDS else _programs_menu(kinds),
            capture=True,
            validator=choice(*programs_routes),
            handler=routes(programs_routes),
            edges=tuple(programs_routes.values()),
        )
    )
    for kind in kinds:
        for node in _browse_nodes(kind, catalog, messages.get("info")):
            graph.add(node)

    graph.add(
        FlowNode(
            id="admision",
            prompt=messages.get("admision"),
            capture=True,
            validator=choice("1", "2", "3", "4", "0"),
            handler=routes({"1": "requisitos", "2": "fechas", "3": "guia", "4": "costos", "0": "menu"}),
            edges=("requisitos", "fechas", "guia", "costos", "menu"),
        )
    )
    graph.add(FlowNode(id="requisitos", prompt=messages.get("requisitos"), edges=(more_admission,)))
    graph.add(FlowNode(id="costos", prompt=messages.get("costos"), edges=(more_admission,)))
    graph.add(
        FlowNode(id="fechas", prompt=Segment("Estas son nuestras fechas", media=DATES_IMAGE), edges=(more_admission,))
    )
    graph.add(
        FlowNode(
            id="guia",
            prompt=[
                "Encuentra toda la información necesaria para postular con éxito:\n"
                " ✔️ Requisitos generales y específicos\n ✔️ Cronograma del proceso de admisión\n"
                " ✔️ Procedimiento de inscripción paso a paso\n ✔️ Contactos y enlaces útiles",
                Segment("Este es nuestra guía de admisión:", media=GUIDE_PDF, file_name="Guia_de_Postulante.pdf"),
            ],
            edges=(more_admission,),
        )
    )
    graph.add(
        FlowNode(
            id=more_admission,
            prompt=[
                "¿Necesitas mayor información sobre admisión?, digite el número de la acción a realizar",
                "1️⃣ *SI* 📜",
                "2️⃣ *NO*",
            ],
            capture=True,
            validator=choice("1", "2"),
            handler=routes({"1": "admision", "2": GOODBYE}),
            edges=("admision", GOODBYE),
        )
    )
    graph.add(
        FlowNode(
            id="taller_tesis",
            prompt=[
                "*¡Bienvenido al Taller de Tesis!*",
                "Aquí encontrarás recursos y apoyo para tu proyecto de tesis, desde la formulación de la "
                "propuesta hasta la defensa final.",
                Segment(
                    "Si tienes de 5 a más años de egresado, puedes participar en nuestro Taller de Tesis para "
                    "mejorar tu proyecto y recibir orientación personalizada.",
                    media=THESIS_IMAGE,
                ),
            ],
            handler=goto(more_admission),
            edges=(more_admission,),
        )
    )
    graph.add(
        FlowNode(
            id="calendario",
            prompt=[
                "Este es nuestro nuevo calendario académico para el 2025-II, puede visitar nuestra página web:",
                CALENDAR_URL,
            ],
        )
    )
    for node in _contact_nodes():
        graph.add(node)
    graph.add(
        FlowNode(id=GOODBYE, prompt="👋 ¡Gracias por comunicarte con nosotros! Que tengas un excelente día.")
    )

    return graph.validate()
