"""
Forest Orchestrator
===================

Runs growth steps over many independent graphs (one graph per plant) in
parallel worker threads.

The orchestrator:
1. Holds a keyed collection of graphs
2. Runs a step function on every healthy graph concurrently
3. Isolates failures: a graph whose step raises is marked failed and
   skipped afterwards, the rest of the forest keeps growing
4. Returns one outcome per graph and step

Graphs never share mutable state, so no locking is needed; inputs shared
between graphs (sampled parameters, queries) must be read-only.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from plantgraph.core.graph import Graph
from plantgraph.core.rules import RewriteReport, rewrite


StepFunction = Callable[[Graph], Any]


class ForestSettings(BaseModel):
    """Execution settings for a forest."""

    max_workers: Optional[int] = Field(default=None, ge=1)
    """Maximum number of graphs processed at once (None = unbounded)."""

    skip_failed: bool = True
    """Skip graphs whose previous step failed."""

    model_config = ConfigDict(frozen=True)


@dataclass
class TreeOutcome:
    """Result of one step on one graph."""

    key: str
    status: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        """Convert the outcome to a JSON-serializable dictionary."""
        result = self.result.to_dict() if isinstance(self.result, RewriteReport) else self.result
        return {
            "key": self.key,
            "status": self.status,
            "result": result,
            "error": self.error,
        }


def simulate(
    graph: Graph,
    steps: int,
    before_rewrite: Optional[StepFunction] = None,
    copy: bool = True,
) -> Graph:
    """
    Grow a graph for a number of generations.

    Parameters
    ----------
    graph : Graph
        Starting graph.
    steps : int
        Number of rewrite generations.
    before_rewrite : callable, optional
        Called with the graph before each rewrite (e.g. elongation through
        a query); must not change topology.
    copy : bool
        Work on a deep copy and leave `graph` untouched.

    Returns
    -------
    Graph
        The grown graph (a copy unless `copy=False`).
    """
    if steps < 0:
        raise ValueError(f"steps must be >= 0, got {steps}")
    grown = graph.copy() if copy else graph
    for _ in range(steps):
        if before_rewrite is not None:
            before_rewrite(grown)
        rewrite(grown)
    return grown


class Forest:
    """
    A keyed collection of independent graphs grown in parallel.

    Example
    -------
    >>> forest = Forest({f"tree_{i}": create_tree(i) for i in range(100)})
    >>> outcomes = forest.step_sync(lambda tree: growth(tree, get_internode))
    >>> forest.failed
    {}
    """

    def __init__(
        self,
        graphs: Mapping[str, Graph] | Iterable[Graph],
        settings: Optional[ForestSettings] = None,
    ):
        if isinstance(graphs, Mapping):
            items = [(str(key), graph) for key, graph in graphs.items()]
        else:
            items = [(f"tree_{index}", graph) for index, graph in enumerate(graphs)]

        for key, graph in items:
            if not isinstance(graph, Graph):
                raise TypeError(f"Forest member '{key}' is not a Graph: {graph!r}")

        self._graphs: dict[str, Graph] = dict(items)
        if len(self._graphs) != len(items):
            raise ValueError("Forest keys must be unique")
        self._settings = settings or ForestSettings()
        self._failed: dict[str, str] = {}

    @property
    def settings(self) -> ForestSettings:
        return self._settings

    @property
    def failed(self) -> dict[str, str]:
        """Failed graphs and the error that stopped them."""
        return dict(self._failed)

    def keys(self) -> list[str]:
        return list(self._graphs)

    def graph(self, key: str) -> Graph:
        return self._graphs[key]

    def graphs(self) -> list[Graph]:
        return list(self._graphs.values())

    def __len__(self) -> int:
        return len(self._graphs)

    def reset_failures(self) -> None:
        """Forget past failures so every graph is stepped again."""
        self._failed.clear()

    async def step(self, fn: StepFunction = rewrite) -> list[TreeOutcome]:
        """
        Run `fn` on every healthy graph in worker threads.

        Parameters
        ----------
        fn : callable
            Step applied to each graph. Defaults to a single rewrite.

        Returns
        -------
        list[TreeOutcome]
            One outcome per graph, in forest order.
        """
        limit = asyncio.Semaphore(self._settings.max_workers or max(len(self._graphs), 1))

        async def run_one(graph: Graph) -> Any:
            async with limit:
                return await asyncio.to_thread(fn, graph)

        active = [
            key for key in self._graphs
            if not (self._settings.skip_failed and key in self._failed)
        ]
        results = await asyncio.gather(
            *(run_one(self._graphs[key]) for key in active),
            return_exceptions=True,
        )
        by_key = dict(zip(active, results))

        outcomes: list[TreeOutcome] = []
        for key in self._graphs:
            if key not in by_key:
                outcomes.append(TreeOutcome(key, "skipped", error=self._failed.get(key)))
                continue

            result = by_key[key]
            if isinstance(result, Exception):
                message = f"{type(result).__name__}: {result}"
                self._failed[key] = message
                print(f"[Forest] Graph '{key}' failed: {message}")
                outcomes.append(TreeOutcome(key, "failed", error=message))
            else:
                outcomes.append(TreeOutcome(key, "ok", result=result))

        ok = sum(1 for outcome in outcomes if outcome.ok)
        print(f"[Forest] Step finished: {ok}/{len(outcomes)} graphs ok")
        return outcomes

    def step_sync(self, fn: StepFunction = rewrite) -> list[TreeOutcome]:
        """Synchronous wrapper for step()."""
        return asyncio.run(self.step(fn))

    async def simulate(
        self,
        steps: int,
        fn: StepFunction = rewrite,
    ) -> list[list[TreeOutcome]]:
        """Run `steps` consecutive steps; returns the outcomes of each step."""
        if steps < 0:
            raise ValueError(f"steps must be >= 0, got {steps}")
        history = []
        for _ in range(steps):
            history.append(await self.step(fn))
        return history

    def simulate_sync(
        self,
        steps: int,
        fn: StepFunction = rewrite,
    ) -> list[list[TreeOutcome]]:
        """Synchronous wrapper for simulate()."""
        return asyncio.run(self.simulate(steps, fn))

    def __repr__(self) -> str:
        return f"Forest(graphs={len(self._graphs)}, failed={len(self._failed)})"
