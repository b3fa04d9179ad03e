"""Step dependency graph.

Builds an explicit directed graph of a transformation's steps (node = step
id, edge = declared input) and derives the execution order before any step
runs. Linear transformations (no step declares inputs) chain each step to
its predecessor by ``order``; in DAG mode a step without inputs reads the
source rows.
"""

from __future__ import annotations

from collections.abc import Sequence

import networkx as nx

from reportstudio.core.errors import TransformationStepError
from reportstudio.core.models import StepSnapshot


def build_step_graph(steps: Sequence[StepSnapshot]) -> nx.DiGraph:  # type: ignore[type-arg]
    """Build the dependency graph of a transformation's steps.

    Args:
        steps: All steps of one transformation

    Returns:
        Directed graph with an edge ``input -> step`` per declared input

    Raises:
        TransformationStepError: Duplicate ids, unknown or self references
    """
    G: nx.DiGraph = nx.DiGraph()  # type: ignore[type-arg]
    by_id = {}
    for step in steps:
        if step.id in by_id:
            raise TransformationStepError(
                f"Duplicate step id {step.id!r}",
                step_id=step.id,
                order=step.order,
                operator=step.operator,
            )
        by_id[step.id] = step
        G.add_node(step.id, order=step.order)

    dag_mode = any(s.input_step_ids for s in steps)
    if dag_mode:
        for step in steps:
            for input_id in step.input_step_ids:
                if input_id == step.id:
                    raise TransformationStepError(
                        f"Step {step.order} lists itself as an input",
                        step_id=step.id,
                        order=step.order,
                        operator=step.operator,
                    )
                if input_id not in by_id:
                    raise TransformationStepError(
                        f"Step {step.order} references unknown input step {input_id!r}",
                        step_id=step.id,
                        order=step.order,
                        operator=step.operator,
                    )
                G.add_edge(input_id, step.id)
    else:
        ordered = sorted(steps, key=lambda s: s.order)
        for prev, step in zip(ordered, ordered[1:], strict=False):
            G.add_edge(prev.id, step.id)
    return G


def execution_order(steps: Sequence[StepSnapshot]) -> list[StepSnapshot]:
    """Topological execution order; ties resolve by step order.

    Raises:
        TransformationStepError: The declared inputs form a cycle
    """
    by_id = {s.id: s for s in steps}
    G = build_step_graph(steps)
    try:
        order = list(
            nx.lexicographical_topological_sort(G, key=lambda n: (by_id[n].order, n))
        )
    except nx.NetworkXUnfeasible:
        cycle = [edge[0] for edge in nx.find_cycle(G)]
        first = min((by_id[n] for n in cycle), key=lambda s: s.order)
        raise TransformationStepError(
            f"Cyclic step dependencies: {' -> '.join(cycle + [cycle[0]])}",
            step_id=first.id,
            order=first.order,
            operator=first.operator,
            details={"cycle": cycle},
        ) from None
    return [by_id[n] for n in order]


def step_inputs(
    G: nx.DiGraph,  # type: ignore[type-arg]
    step: StepSnapshot,
) -> list[str]:
    """Input step ids in declared order (graph predecessors for linear mode)."""
    if step.input_step_ids:
        return list(step.input_step_ids)
    return list(G.predecessors(step.id))
