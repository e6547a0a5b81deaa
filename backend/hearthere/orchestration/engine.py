"""Minimal async dependency-graph engine with fan-out/fan-in.

Nodes are async functions ``fn(state) -> update | list[Send] | None``.
A node returning a list of ``Send`` fans out to the node its edge points at:
every send runs concurrently as ``target(state, payload)``, the branch updates
are merged in submission order, and execution continues along the edge that
leaves the target.

If any branch raises, its still-running siblings are cancelled and the error
propagates. State is only ever changed through the reducer passed to
``StateGraph``.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from backend.hearthere.cache.store import CacheStore

logger = logging.getLogger(__name__)

S = TypeVar("S")

END = "__end__"

Reducer = Callable[[S, dict[str, Any] | None], S]
BeforeNode = Callable[[S, str], Awaitable[None]]


@dataclass(frozen=True)
class Send:
    """Dispatch one fan-out branch to a node with its own payload."""

    node: str
    payload: Any


class Checkpointer(Protocol):
    async def save(self, thread_id: str, step: int, state: Any) -> None: ...

    async def load(self, thread_id: str) -> dict[str, Any] | None: ...


class CacheCheckpointer:
    """Stores state snapshots under checkpoint:{thread_id}. Never fatal."""

    def __init__(self, store: CacheStore, *, ttl_seconds: int = 2 * 3600) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(thread_id: str) -> str:
        return f"checkpoint:{thread_id}"

    async def save(self, thread_id: str, step: int, state: Any) -> None:
        record = {"threadId": thread_id, "step": step, "state": state.to_record()}
        try:
            await self._store.put(self.key_for(thread_id), record, self._ttl_seconds)
        except Exception as e:
            logger.warning("Checkpoint %s step %d not saved: %s", thread_id, step, e)

    async def load(self, thread_id: str) -> dict[str, Any] | None:
        try:
            return await self._store.get(self.key_for(thread_id))
        except Exception as e:
            logger.warning("Checkpoint %s not loaded: %s", thread_id, e)
            return None


@dataclass
class _Node:
    name: str
    fn: Callable[..., Awaitable[Any]]
    phase: str | None = None


class StateGraph(Generic[S]):
    """Builder for a compiled graph."""

    def __init__(self, reducer: Reducer) -> None:
        self._reducer = reducer
        self._nodes: dict[str, _Node] = {}
        self._edges: dict[str, str] = {}
        self._entry: str | None = None

    def add_node(
        self, name: str, fn: Callable[..., Awaitable[Any]], *, phase: str | None = None
    ) -> "StateGraph[S]":
        """Register a node. ``phase`` is applied to state when the node starts."""
        if name in self._nodes or name == END:
            raise ValueError(f"Duplicate node name: {name}")
        self._nodes[name] = _Node(name=name, fn=fn, phase=phase)
        return self

    def add_edge(self, src: str, dst: str) -> "StateGraph[S]":
        if src in self._edges:
            raise ValueError(f"Node {src} already has an outgoing edge")
        self._edges[src] = dst
        return self

    def set_entry(self, name: str) -> "StateGraph[S]":
        self._entry = name
        return self

    def compile(
        self,
        checkpointer: Checkpointer | None = None,
        *,
        before_node: BeforeNode | None = None,
        max_steps: int = 25,
    ) -> "CompiledGraph[S]":
        """Validate wiring and freeze the graph.

        Raises:
            ValueError: Missing entry, or an edge to an unknown node
        """
        if self._entry is None or self._entry not in self._nodes:
            raise ValueError("Graph entry node is not set")
        for src, dst in self._edges.items():
            if src not in self._nodes:
                raise ValueError(f"Edge from unknown node: {src}")
            if dst != END and dst not in self._nodes:
                raise ValueError(f"Edge to unknown node: {dst}")
        return CompiledGraph(
            nodes=dict(self._nodes),
            edges=dict(self._edges),
            entry=self._entry,
            reducer=self._reducer,
            checkpointer=checkpointer,
            before_node=before_node,
            max_steps=max_steps,
        )


class CompiledGraph(Generic[S]):
    """Executable graph."""

    def __init__(
        self,
        *,
        nodes: dict[str, _Node],
        edges: dict[str, str],
        entry: str,
        reducer: Reducer,
        checkpointer: Checkpointer | None,
        before_node: BeforeNode | None,
        max_steps: int,
    ) -> None:
        self.nodes = nodes
        self.edges = edges
        self.entry = entry
        self._reducer = reducer
        self._checkpointer = checkpointer
        self._before_node = before_node
        self._max_steps = max_steps

    async def run(self, state: S, *, thread_id: str | None = None) -> S:
        """Execute from the entry node until END; returns the final state."""
        current = self.entry
        step = 0

        while current != END:
            step += 1
            if step > self._max_steps:
                raise RuntimeError(f"Graph exceeded {self._max_steps} steps")

            node = self.nodes[current]
            state = await self._enter(state, node)

            started = time.monotonic()
            result = await node.fn(state)

            if isinstance(result, list):
                target = self.edges.get(current, END)
                state = await self._fan_out(state, current, target, result)
                logger.info(
                    "Fan-out %s -> %s joined %d branches in %.0fms",
                    current,
                    target,
                    len(result),
                    (time.monotonic() - started) * 1000,
                )
                await self._checkpoint(thread_id, step, state)
                current = self.edges.get(target, END)
                continue

            state = self._reducer(state, result)
            logger.info("Node %s finished in %.0fms", current, (time.monotonic() - started) * 1000)
            await self._checkpoint(thread_id, step, state)
            current = self.edges.get(current, END)

        return state

    async def _enter(self, state: S, node: _Node) -> S:
        if self._before_node is not None:
            await self._before_node(state, node.name)
        if node.phase is not None:
            state = self._reducer(state, {"phase": node.phase})
        return state

    async def _fan_out(self, state: S, source: str, target: str, sends: list[Send]) -> S:
        for send in sends:
            if send.node != target:
                raise ValueError(
                    f"Node {source} sent to {send.node} but its edge points to {target}"
                )
        if not sends:
            return state

        target_node = self.nodes[target]
        state = await self._enter(state, target_node)

        tasks = [asyncio.create_task(target_node.fn(state, send.payload)) for send in sends]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for update in results:
            state = self._reducer(state, update)
        return state

    async def _checkpoint(self, thread_id: str | None, step: int, state: S) -> None:
        if self._checkpointer is not None and thread_id:
            await self._checkpointer.save(thread_id, step, state)
