import plotly.express as px
import pandas as pd


def export_operator_histogram(nodes, path: str):
    if not nodes:
        with open(path, "w") as f:
            f.write("<h1>Operator Histogram</h1><p>No data to display.</p>")
        return

    df = pd.DataFrame(nodes)
    if 'category' not in df.columns:
        df['category'] = ''
    df['category'] = df['category'].fillna('').replace('', 'Other')
    counts = df.groupby(['operator', 'category']).size().reset_index(name='count')
    counts = counts.sort_values('count', ascending=False)

    fig = px.bar(
        counts,
        x="operator",
        y="count",
        color="category",
        title="TorchScript Graph Operators",
        labels={"operator": "Operator", "count": "Nodes", "category": "Category"}
    )
    fig.update_layout(
        font=dict(family="Courier New, monospace", size=12),
        legend_title="Category"
    )

    fig.write_html(path, include_plotlyjs="cdn", full_html=True)


def export_graph_ascii(graph):
    if not graph.nodes:
        return "Graph is empty."

    rows = []
    for node in graph.nodes:
        inputs = ", ".join(
            a.id or (str(a.type) if a.type is not None else "?")
            for p in node.inputs for a in p.arguments
        )
        outputs = ", ".join(a.id for p in node.outputs for a in p.arguments)
        rows.append((node.operator, node.name, inputs, outputs))

    op_width = max(8, max(len(r[0]) for r in rows))
    name_width = max(4, max(len(r[1]) for r in rows))

    chart = f"Graph '{graph.name}'\n" if graph.name else "Graph\n"
    chart += ("-" * 90) + "\n"
    chart += f"{'Operator':<{op_width}} | {'Name':<{name_width}} | Inputs -> Outputs\n"
    chart += ("-" * 90) + "\n"
    for operator, name, inputs, outputs in rows:
        chart += f"{operator:<{op_width}} | {name:<{name_width}} | {inputs} -> {outputs}\n"
    chart += ("-" * 90) + "\n"
    if graph.inputs or graph.outputs:
        chart += f"inputs: {', '.join(p.name for p in graph.inputs)}  outputs: {', '.join(p.name for p in graph.outputs)}\n"

    return chart
