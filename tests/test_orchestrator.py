import asyncio

import pytest

from posgradobot.core.errors import DeliveryFailure
from posgradobot.core.flows import GOODBYE
from posgradobot.state import session_store

from tests.conftest import TRIBUTACION_PDF


async def _chat(bot, user_id, *messages):
    result = None
    for text in messages:
        result = await bot.handle_message(user_id, text)
    return result


def _texts(adapter, user_id):
    return [m["text"] for m in adapter.messages_to(user_id)]


@pytest.mark.asyncio
async def test_first_message_gets_welcome_and_menu(bot, adapter):
    result = await bot.handle_message("51999", "hola", name="Ana")
    assert result["node"] == "menu"
    assert result["delivered"]
    texts = _texts(adapter, "51999")
    assert texts[0].startswith("🌟 *BIENVENIDO")
    assert texts[-1].startswith("📋 *MENÚ PRINCIPAL*")

    session = await session_store.get_session("51999")
    assert session["node"] == "menu"
    assert session["name"] == "Ana"


@pytest.mark.asyncio
async def test_full_browse_sends_brochure(bot, adapter, store):
    result = await _chat(bot, "51999", "hola", "1", "1", "1", "1")
    assert result["node"] == "otro_maestria"
    media = [m for m in adapter.messages_to("51999") if m["media"] == TRIBUTACION_PDF]
    assert media and media[0]["text"] == "📄 Aquí tienes el brochure:"
    assert await store.get("51999") is None

    result = await bot.handle_message("51999", "no")
    assert result["node"] is None
    assert await session_store.get_session("51999") is None

    # the next message starts over
    result = await bot.handle_message("51999", "hola")
    assert result["node"] == "menu"


@pytest.mark.asyncio
@pytest.mark.parametrize("keyword", ["adios", "Adiós", "BYE", " chau "])
async def test_exit_keywords_end_from_anywhere(bot, adapter, keyword):
    await _chat(bot, "51999", "hola", "5", "1")
    result = await bot.handle_message("51999", keyword)
    assert result["node"] is None
    assert _texts(adapter, "51999")[-1].startswith("👋 ¡Gracias por comunicarte")
    assert await session_store.get_session("51999") is None


@pytest.mark.asyncio
async def test_contact_form_through_orchestrator(bot, adapter, store):
    await _chat(bot, "51999", "hola", "5", "1", "2", "Jane Doe", "Jane@X.com", "999999999")
    session = await session_store.get_session("51999")
    assert session["node"] == "contacto_mensaje"
    assert session["data"]["correo"] == "jane@x.com"

    result = await bot.handle_message("51999", "hello")
    assert result["node"] is None
    assert _texts(adapter, "51999")[-1].endswith("Su ID de solicitud es: 1")
    assert len(await store.list_contacts()) == 1


@pytest.mark.asyncio
async def test_resent_final_answer_after_failed_confirmation_files_one_request(bot, adapter, store, monkeypatch):
    await _chat(bot, "51999", "hola", "5", "1", "2", "Jane Doe", "jane@x.com", "999999999")

    async def offline(destination, text, media=None, file_name=None):
        raise DeliveryFailure("offline")

    with monkeypatch.context() as patch:
        patch.setattr(adapter, "send", offline)
        result = await bot.handle_message("51999", "hello")
    assert not result["delivered"]
    assert result["node"] == "contacto_mensaje"

    result = await bot.handle_message("51999", "hello")
    assert result["delivered"]
    assert result["node"] is None
    assert _texts(adapter, "51999")[-1].endswith("Su ID de solicitud es: 1")

    contacts = await store.list_contacts()
    assert [c["id"] for c in contacts] == [1]
    assert contacts[0]["nombre"] == "Jane Doe"
    assert await session_store.get_session("51999") is None


@pytest.mark.asyncio
async def test_user_locks_are_released_after_turns(bot):
    await bot.handle_message("u1", "hola")
    await asyncio.gather(*(bot.handle_message("u1", "1") for _ in range(3)), bot.handle_message("u2", "hola"))
    await bot.dispatch("CONTACTO_FLOW", "u3")
    assert bot._locks == {}
    assert bot._lock_users == {}


@pytest.mark.asyncio
async def test_blacklisted_user_is_ignored(bot, adapter):
    bot.blacklist_add("51999")
    result = await bot.handle_message("51999", "hola")
    assert result["ignored"]
    assert adapter.sent == []
    assert bot.blacklist_list() == ["51999"]

    bot.blacklist_remove("51999")
    assert not bot.is_blacklisted("51999")
    await bot.handle_message("51999", "hola")
    assert adapter.sent


@pytest.mark.asyncio
async def test_failed_delivery_keeps_the_pointer(bot, adapter, monkeypatch):
    await bot.handle_message("51999", "hola")

    async def offline(destination, text, media=None, file_name=None):
        raise DeliveryFailure("offline")

    monkeypatch.setattr(adapter, "send", offline)
    result = await bot.handle_message("51999", "1")
    assert not result["delivered"]
    assert result["node"] == "menu"
    assert (await session_store.get_session("51999"))["node"] == "menu"


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_escape(bot, monkeypatch):
    async def broken(user_id):
        raise RuntimeError("redis exploded")

    monkeypatch.setattr(session_store, "get_session", broken)
    result = await bot.handle_message("51999", "hola")
    assert result["error"] == "redis exploded"


@pytest.mark.asyncio
async def test_dispatch_enters_the_event_node(bot, adapter):
    await _chat(bot, "51999", "hola", "5", "3")
    result = await bot.dispatch("PROGRAMAS_FLOW", "51999")
    assert result["node"] == "programas"
    assert _texts(adapter, "51999")[-1].startswith("📚 *PROGRAMAS DE POSGRADO*")
    assert (await session_store.get_session("51999"))["data"] == {}

    result = await bot.dispatch("CONTACTO_FLOW", "51888", name="Ana")
    assert result["node"] == "contacto_tipo"


@pytest.mark.asyncio
async def test_dispatch_unknown_event(bot):
    with pytest.raises(ValueError):
        await bot.dispatch("NOPE_FLOW", "51999")


@pytest.mark.asyncio
async def test_turns_for_one_user_are_serialized(bot, adapter, monkeypatch):
    active = []
    overlaps = []
    original_send = adapter.send

    async def slow_send(destination, text, media=None, file_name=None):
        active.append(destination)
        if active.count(destination) > 1:
            overlaps.append(destination)
        await asyncio.sleep(0)
        await original_send(destination, text, media, file_name)
        active.remove(destination)

    monkeypatch.setattr(adapter, "send", slow_send)
    await bot.handle_message("u1", "hola")
    await asyncio.gather(*(bot.handle_message("u1", "1") for _ in range(3)), bot.handle_message("u2", "hola"))
    assert overlaps == []
    assert (await session_store.get_session("u2"))["node"] == "menu"


@pytest.mark.asyncio
async def test_send_message_with_and_without_media(bot, adapter):
    await bot.send_message("51999", "hola")
    await bot.send_message("51999", "pdf", url_media="https://example.edu/a.pdf")
    assert adapter.sent[0] == {"to": "51999", "text": "hola", "media": None, "file_name": None}
    assert adapter.sent[1]["media"] == "https://example.edu/a.pdf"


def test_goodbye_node_is_terminal(bot):
    assert bot.engine.graph.is_terminal(GOODBYE)
