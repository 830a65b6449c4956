# posgradobot/core/flow_engine.py
"""
Conversation flow engine.

The conversation is a directed graph: node id -> FlowNode, with an explicit
entry node and an explicit set of terminal nodes. The graph is cyclic on
purpose ("¿ver otra maestría?" goes back to the faculty list).

A node:
 - emits its prompt segments when entered;
 - if `capture` is set, parks the user there until the next reply, which must
   pass `validator` (otherwise: rejection message + same prompt again);
 - runs its async `handler(ctx)`, which applies side effects in order and
   returns the next node id (one of the declared `edges`) or TERMINAL.

Non-capture nodes are pass-through: the engine keeps entering nodes until it
parks on a capture node or reaches a terminal. Side effects are not
transactional; a failure halfway leaves earlier writes committed and the user
recovers by answering the same node again.

    engine = FlowEngine(graph, store)
    turn = await engine.advance("menu", "51999...", "1")
    turn.segments   -> what to send, in order
    turn.next_node  -> where the user is parked now (None when the session ended)
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from posgradobot.core.errors import LookupMiss, ValidationFailure
from posgradobot.core.normalizer import normalize

logger = logging.getLogger("posgradobot.core.flow_engine")

TERMINAL = "__end__"

# non-capture chains longer than this mean a wiring bug
MAX_PASS_THROUGH = 25

DEFAULT_REJECTION = "❌ Respuesta no válida, selecciona una de las opciones."
DEFAULT_ERROR = "❌ Ocurrió un error. Por favor intenta de nuevo."

YES_REPLIES = frozenset(["1", "si", "s", "y", "yes"])
NO_REPLIES = frozenset(["2", "no", "n", "nop"])


@dataclass
class Segment:
    text: str = ""
    media: Optional[str] = None
    file_name: Optional[str] = None


PromptSource = Union[str, Segment, Sequence[Union[str, Segment]], Callable[["FlowContext"], Sequence[Segment]]]
Validator = Callable[[str], bool]
Handler = Callable[["FlowContext"], Awaitable[str]]


def _as_segments(items: Iterable[Union[str, Segment]]) -> List[Segment]:
    out = []
    for item in items:
        if isinstance(item, Segment):
            out.append(item)
        elif item:
            out.append(Segment(text=str(item)))
    return out


# -- validators ----------------------------------------------------------------

def free_text(reply: str) -> bool:
    return True


def choice(*options: str) -> Validator:
    allowed = frozenset(options)

    def _validate(reply: str) -> bool:
        return (reply or "").strip() in allowed

    return _validate


def numeric_choice(reply: str) -> bool:
    return (reply or "").strip().isdecimal()


def yes_no(reply: str) -> bool:
    answer = normalize(reply)
    return answer in YES_REPLIES or answer in NO_REPLIES


def is_yes(reply: str) -> bool:
    return normalize(reply) in YES_REPLIES


# -- handlers ------------------------------------------------------------------

def routes(mapping: Dict[str, str]) -> Handler:
    """Handler that maps the trimmed reply to the next node id."""

    async def _route(ctx: "FlowContext") -> str:
        try:
            return mapping[ctx.reply.strip()]
        except KeyError:
            raise ValidationFailure()

    return _route


def goto(node_id: str) -> Handler:
    async def _goto(ctx: "FlowContext") -> str:
        return node_id

    return _goto


def keycap(number: int) -> str:
    """1 -> 1️⃣, 10 -> 🔟, 12 -> 1️⃣2️⃣"""
    if number == 10:
        return "🔟"
    return "".join(f"{digit}️⃣" for digit in str(number))


def numbered(labels: Sequence[str]) -> str:
    return "\n".join(f"{keycap(i)} {label}" for i, label in enumerate(labels, start=1))


# -- graph ---------------------------------------------------------------------

@dataclass
class FlowNode:
    id: str
    prompt: PromptSource = ()
    capture: bool = False
    validator: Validator = free_text
    handler: Optional[Handler] = None
    edges: Tuple[str, ...] = ()
    rejection: str = DEFAULT_REJECTION
    recovery: Optional[str] = None

    def render(self, ctx: "FlowContext") -> List[Segment]:
        prompt = self.prompt
        if callable(prompt):
            return _as_segments(prompt(ctx))
        if isinstance(prompt, (str, Segment)):
            return _as_segments([prompt])
        return _as_segments(prompt)


class FlowGraph:
    def __init__(self, entry: str, nodes: Iterable[FlowNode] = (), terminals: Iterable[str] = ()):
        self.entry = entry
        self.nodes: Dict[str, FlowNode] = {}
        self.terminals: Set[str] = set(terminals)
        for node in nodes:
            self.add(node)

    def add(self, node: FlowNode) -> FlowNode:
        if node.id in self.nodes:
            raise ValueError(f"duplicate flow node id: {node.id}")
        self.nodes[node.id] = node
        return node

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def get(self, node_id: str) -> FlowNode:
        return self.nodes[node_id]

    def is_terminal(self, node_id: str) -> bool:
        return node_id in self.terminals

    def reachable(self, start: Optional[str] = None) -> Set[str]:
        seen: Set[str] = set()
        pending = [start or self.entry]
        while pending:
            node_id = pending.pop()
            if node_id in seen or node_id not in self.nodes:
                continue
            seen.add(node_id)
            node = self.nodes[node_id]
            pending.extend(e for e in node.edges if e != TERMINAL)
            if node.recovery:
                pending.append(node.recovery)
        return seen

    def problems(self, extra_roots: Iterable[str] = ()) -> List[str]:
        """
        Wiring errors: unknown edges, non-terminal dead ends, unreachable nodes
        and pass-through cycles (which would never park the user).
        """
        found = []
        if self.entry not in self.nodes:
            found.append(f"entry node {self.entry!r} is not defined")
        for terminal in self.terminals:
            if terminal not in self.nodes:
                found.append(f"terminal {terminal!r} is not defined")
        for node in self.nodes.values():
            for edge in node.edges:
                if edge != TERMINAL and edge not in self.nodes:
                    found.append(f"{node.id} -> {edge}: unknown node")
            if node.recovery and node.recovery not in self.nodes:
                found.append(f"{node.id} recovery {node.recovery!r}: unknown node")
            if node.id in self.terminals:
                if node.edges or node.capture:
                    found.append(f"terminal {node.id} must not capture or have edges")
            elif not node.edges:
                found.append(f"{node.id} is a dead end")
            elif len(node.edges) > 1 and node.handler is None:
                found.append(f"{node.id} has several edges but no handler to choose")

        reachable: Set[str] = set()
        for root in [self.entry, *extra_roots]:
            reachable |= self.reachable(root)
        for node_id in self.nodes:
            if node_id not in reachable:
                found.append(f"{node_id} is unreachable")

        for node in self.nodes.values():
            if not node.capture and node.id not in self.terminals:
                if self._pass_through_cycle(node.id):
                    found.append(f"{node.id} is on a cycle without capture nodes")
        return found

    def _pass_through_cycle(self, start: str) -> bool:
        pending = [e for e in self.nodes[start].edges if e in self.nodes]
        seen: Set[str] = set()
        while pending:
            node_id = pending.pop()
            if node_id == start:
                return True
            if node_id in seen:
                continue
            seen.add(node_id)
            node = self.nodes[node_id]
            if not node.capture:
                pending.extend(e for e in node.edges if e in self.nodes)
        return False

    def validate(self, extra_roots: Iterable[str] = ()) -> "FlowGraph":
        found = self.problems(extra_roots)
        if found:
            raise ValueError("invalid flow graph: " + "; ".join(found))
        return self


# -- execution -----------------------------------------------------------------

class FlowContext:
    """
    Everything a handler may touch during one turn. Side effects are recorded
    in the order they are applied.
    """

    def __init__(
        self,
        user_id: str,
        store,
        reply: str = "",
        session: Optional[Dict[str, Any]] = None,
        services: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.user_id = user_id
        self.store = store
        self.reply = reply or ""
        self.session: Dict[str, Any] = dict(session or {})
        self.services: Dict[str, Any] = services or {}
        self.extra: Dict[str, Any] = extra or {}
        self.segments: List[Segment] = []
        self.side_effects: List[str] = []

    def __getattr__(self, name: str) -> Any:
        # services (catalog, messages, ...) read as attributes
        services = self.__dict__.get("services") or {}
        if name in services:
            return services[name]
        raise AttributeError(name)

    # outbound
    def say(self, *texts: str) -> None:
        self.segments.extend(_as_segments(texts))

    def send_media(self, text: str, media: Optional[str], file_name: Optional[str] = None) -> None:
        self.segments.append(Segment(text=text, media=media, file_name=file_name))

    # durable state
    async def get_state(self) -> Dict[str, Any]:
        return await self.store.get(self.user_id) or {}

    async def merge_state(self, **partial: Any) -> Dict[str, Any]:
        merged = await self.store.merge(self.user_id, partial)
        self.side_effects.append("state.merge")
        return merged

    async def clear_state(self) -> None:
        await self.store.delete(self.user_id)
        self.side_effects.append("state.delete")

    async def append_contact(self, record: Dict[str, Any]):
        contact = await self.store.append_contact(record)
        self.side_effects.append("contact.append")
        return contact

    async def get_contact(self, request_id: Optional[int]):
        if request_id is None:
            return None
        return await self.store.get_contact(request_id)

    # ephemeral state
    def remember(self, **values: Any) -> None:
        self.session.update(values)
        self.side_effects.append("session.update")

    def forget(self) -> None:
        self.session.clear()
        self.side_effects.append("session.clear")


@dataclass
class Turn:
    segments: List[Segment] = field(default_factory=list)
    next_node: Optional[str] = None
    side_effects: List[str] = field(default_factory=list)
    session: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.next_node is None

    @property
    def texts(self) -> List[str]:
        return [s.text for s in self.segments]


class FlowEngine:
    def __init__(self, graph: FlowGraph, store, services: Optional[Dict[str, Any]] = None):
        self.graph = graph
        self.store = store
        self.services = services or {}

    def _context(self, user_id, reply="", session=None, extra=None) -> FlowContext:
        return FlowContext(user_id, self.store, reply=reply, session=session, services=self.services, extra=extra)

    async def enter(
        self,
        node_id: str,
        user_id: str,
        session: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Turn:
        """Enter a node without a reply (event dispatch, welcome)."""
        ctx = self._context(user_id, session=session, extra=extra)
        if node_id not in self.graph:
            logger.warning("Unknown node %s for %s; entering %s", node_id, user_id, self.graph.entry)
            node_id = self.graph.entry
        parked = await self._enter(node_id, ctx)
        return self._turn(ctx, parked)

    async def advance(
        self,
        node_id: str,
        user_id: str,
        raw_input: str,
        session: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Turn:
        """Feed a reply to the node the user is parked on."""
        ctx = self._context(user_id, reply=raw_input, session=session, extra=extra)
        if node_id not in self.graph:
            logger.warning("User %s parked on unknown node %s; restarting at %s", user_id, node_id, self.graph.entry)
            return self._turn(ctx, await self._enter(self.graph.entry, ctx))

        node = self.graph.get(node_id)
        if node.capture and not node.validator(ctx.reply):
            logger.debug("Rejected reply %r at %s for %s", ctx.reply, node_id, user_id)
            ctx.say(node.rejection)
            next_id = node.id
        else:
            next_id = await self._run_handler(node, ctx)

        if next_id == TERMINAL:
            return self._turn(ctx, None)
        return self._turn(ctx, await self._enter(next_id, ctx))

    def _turn(self, ctx: FlowContext, parked: Optional[str]) -> Turn:
        return Turn(segments=ctx.segments, next_node=parked, side_effects=ctx.side_effects, session=ctx.session)

    async def _enter(self, node_id: str, ctx: FlowContext) -> Optional[str]:
        for _ in range(MAX_PASS_THROUGH):
            node = self.graph.get(node_id)
            ctx.segments.extend(node.render(ctx))
            if self.graph.is_terminal(node_id):
                return None
            if node.capture:
                return node_id
            next_id = await self._run_handler(node, ctx)
            if next_id == TERMINAL:
                return None
            node_id = next_id
        raise RuntimeError(f"pass-through chain from {node_id} never parks")

    async def _run_handler(self, node: FlowNode, ctx: FlowContext) -> str:
        if node.handler is None:
            return node.edges[0] if node.edges else TERMINAL
        try:
            next_id = await node.handler(ctx)
            if next_id != TERMINAL and next_id not in node.edges:
                raise RuntimeError(f"{node.id} returned undeclared edge {next_id!r}")
            return next_id
        except ValidationFailure as exc:
            ctx.say(exc.message or node.rejection)
            return node.id if node.capture else self.graph.entry
        except LookupMiss as exc:
            logger.info("Lookup miss at %s for %s: %s", node.id, ctx.user_id, exc.message)
            ctx.say(exc.message)
            return exc.redirect if exc.redirect in self.graph else self.graph.entry
        except Exception as exc:
            logger.exception("Error in node %s for %s: %s", node.id, ctx.user_id, exc)
            ctx.say(DEFAULT_ERROR)
            if node.recovery:
                return node.recovery
            return node.id if node.capture else self.graph.entry
