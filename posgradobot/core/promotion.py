# posgradobot/core/promotion.py
"""
Promotional follow-up for a registered applicant (POST /v1/enviar-mensaje).

Sends, in order:
 1. greeting with the applicant's name
 2. pricing + dates, picked by the program kind found in the program name
 3. the program brochure (or the faculty brochure) resolved by the MatchingEngine
 4. closing text with the WhatsApp group link

Returns which brochure went out: "programa" | "facultad" | "ninguno".
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from posgradobot.core.catalog import ProgramKind
from posgradobot.core.delivery import DeliveryAdapter, send_media
from posgradobot.core.matching import MatchingEngine

logger = logging.getLogger("posgradobot.core.promotion")

BROCHURE_PROGRAM = "programa"
BROCHURE_FACULTY = "facultad"
BROCHURE_NONE = "ninguno"


@dataclass(frozen=True)
class Pricing:
    price: str
    duration: str
    account: str
    cci: str


PRICING: Dict[ProgramKind, Pricing] = {
    ProgramKind.MAESTRIA: Pricing("S/ 200", "3 semestres académicos", "000-3747336", "009-100-000003747336-90"),
    ProgramKind.DOCTORADO: Pricing("S/ 250", "6 semestres académicos", "000-3747336", "009-100-000003747336-90"),
    ProgramKind.ESPECIALIDAD: Pricing("S/ 120", "2 semestres académicos", "000-1797042", "009-100-000001797042-97"),
}

# names without a kind keep the copy with blank pricing
UNKNOWN_PRICING = Pricing("", "", "", "")


def pricing_for(program_name: str) -> Pricing:
    kind = ProgramKind.detect(program_name)
    return PRICING.get(kind, UNKNOWN_PRICING)


def greeting_text(name: str) -> str:
    return (
        f"👋 Felicidades {name}\n"
        "*Somos de la Escuela de Posgrado de la UNAC*\n"
        "🚀 Ya se encuentra registrado para nuestros programas de Posgrado!"
    )


def pricing_text(pricing: Pricing, settings) -> str:
    return f"""💥 ¡Quiero contarte sobre nuestro programa de posgrado y los increíbles beneficios que puedes obtener! 🎓

📌 Costo de Inscripción:
Por solo {pricing.price} recibirás:
📂 Carpeta de Postulante
📝 Derecho de Inscripción

🏦 Medios de Pago:
CCI: {pricing.cci}
N° Cta. Cte.: {pricing.account} (Scotiabank)

📅 Fechas importantes:
🖋 Inscripciones: {settings.PROMO_DEADLINE}
📹 Entrevista virtual: {settings.PROMO_INTERVIEW}
📃 Resultados: 1-2 días después del examen
🎒 Inicio de clases: {settings.PROMO_CLASSES_START}

⏳ Duración del programa: {pricing.duration}
💵 Costo por semestre: ~S/ 2500~ *S/ 2100*

📲 Contáctanos ahora:
📩 {settings.PROMO_EMAIL}
📞 {settings.PROMO_PHONE}"""


def closing_text(settings) -> str:
    return f"""📌 Estoy disponible para resolver cualquier duda y acompañarte en tu proceso de inscripción.
O puedes unirte al grupo de WhatsApp {settings.PROMO_GROUP_NAME}:
{settings.PROMO_GROUP_LINK}

📩 Correo: {settings.PROMO_EMAIL}
📞 WhatsApp: {settings.PROMO_PHONE}

🚀 ¡Escríbeme ahora y asegura tu cupo en la maestría!"""


async def send_promotion(
    adapter: DeliveryAdapter,
    matcher: MatchingEngine,
    settings,
    numero: str,
    mensaje: str,
    facultad: Optional[str],
    programa: str,
) -> str:
    """Send the promotional sequence to `numero`; DeliveryFailure of a text send propagates."""
    await adapter.send(numero, greeting_text(mensaje))
    await adapter.send(numero, pricing_text(pricing_for(programa), settings))

    result = matcher.resolve_brochure(programa, faculty_hint=facultad)
    sent = BROCHURE_NONE
    if result is None:
        logger.warning("No brochure for program %r nor faculty %r", programa, facultad)
    else:
        caption = (
            f"📄 Aquí está el brochure de *{programa}*:"
            if result.tier.program_level
            else "📄 Aquí está el brochure de su facultad:"
        )
        await send_media(
            adapter,
            numero,
            caption,
            result.url,
            attempts=settings.MEDIA_RETRY_ATTEMPTS,
            delay=settings.MEDIA_RETRY_DELAY,
        )
        sent = BROCHURE_PROGRAM if result.tier.program_level else BROCHURE_FACULTY

    await adapter.send(numero, closing_text(settings))
    logger.info("Promotion sent to %s (brochure=%s)", numero, sent)
    return sent
