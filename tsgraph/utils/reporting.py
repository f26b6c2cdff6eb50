from __future__ import annotations
import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List

from ..config import LoaderConfig
from ..ir.model_ir import Model, Parameter, jsonable
from . import viz


def _parameters(parameters: List[Parameter]) -> List[Dict[str, Any]]:
    return [
        {
            "name": p.name,
            "arguments": [
                {
                    "id": a.id,
                    "type": str(a.type) if a.type is not None else None,
                    "initializer": a.initializer is not None,
                    "state": a.initializer.state if a.initializer is not None else None,
                }
                for a in p.arguments
            ],
        }
        for p in parameters
    ]


def generate_report_json(model: Model, config: LoaderConfig) -> Dict[str, Any]:
    """Generates a JSON-compatible dictionary describing the loaded graph."""
    graph = model.graph
    nodes = []
    for node in graph.nodes:
        nodes.append({
            'operator': node.operator,
            'name': node.name,
            'category': node.category,
            'inputs': _parameters(node.inputs),
            'outputs': _parameters(node.outputs),
            'attributes': {a.name: jsonable(a.value) for a in node.attributes if a.visible},
        })

    operator_counts = Counter(n['operator'] for n in nodes)
    tensor_count = sum(
        1 for n in graph.nodes for p in n.inputs for a in p.arguments if a.initializer is not None
    )

    return {
        "format": model.format,
        "producer": model.producer,
        "name": graph.name,
        "inputs": _parameters(graph.inputs),
        "outputs": _parameters(graph.outputs),
        "nodes": nodes,
        "operator_counts": dict(operator_counts),
        "initializer_count": tensor_count,
        "config": config.__dict__,
    }


def generate_report(model: Model, config: LoaderConfig):
    """Generates all report artifacts."""
    report_data = generate_report_json(model, config)
    output_dir = Path(config.report_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(output_dir / "report.json", "w") as f:
        json.dump(report_data, f, indent=4)

    viz.export_operator_histogram(report_data['nodes'], str(output_dir / "report.html"))

    print(viz.export_graph_ascii(model.graph))

    print(f"\nReports generated in {output_dir.absolute()}")
    print(f"\nFormat: {report_data['format']}")
    if report_data['producer']:
        print(f"Producer: {report_data['producer']}")
    if report_data['operator_counts']:
        print("\nOperators:")
        for key, value in sorted(report_data['operator_counts'].items()):
            print(f"  {key}: {value}")
    print(f"\nTotal Nodes: {len(report_data['nodes'])}")
