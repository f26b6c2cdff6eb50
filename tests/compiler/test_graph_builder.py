from archive_factory import NET_SOURCE, conv_net_entries
from tsgraph.compiler.graph_builder import build_graph
from tsgraph.config import LoaderConfig
from tsgraph.ir.container import Container


def _graph(metadata, entries, config=None):
    return build_graph(Container('net.pt', entries), metadata, config)


class TestTracedGraph:
    def test_conv_folds_into_convolution(self, metadata):
        # given
        entries = conv_net_entries()

        # when
        graph = _graph(metadata, entries)

        # then
        assert [n.operator for n in graph.nodes] == ['_convolution', 'relu']
        conv = graph.nodes[0]
        assert conv.name == 'conv'
        assert conv.category == 'Layer'
        assert conv.documentation['name'] == '_convolution'
        assert [p.name for p in conv.inputs] == ['input', 'weight', 'bias']
        assert conv.inputs[0].arguments[0].initializer is None
        assert conv.inputs[1].arguments[0].initializer.value == [[[[1.0]]], [[[2.0]]]]
        assert conv.inputs[2].arguments[0].initializer.value == [0.5, -0.5]

    def test_graph_inputs_and_outputs_come_from_trace(self, metadata):
        graph = _graph(metadata, conv_net_entries())

        relu = graph.nodes[1]
        assert [p.name for p in graph.inputs] == ['x']
        assert relu.inputs[0].arguments[0].id == graph.nodes[0].outputs[0].arguments[0].id
        assert [a.id for p in graph.outputs for a in p.arguments] == [relu.outputs[0].arguments[0].id]

    def test_every_parameter_module_appears_once(self, metadata):
        graph = _graph(metadata, conv_net_entries())

        module_nodes = [n for n in graph.nodes if n.operator == 'Module']
        folded = [n for n in graph.nodes if n.name == 'conv' and n.operator != 'Module']
        assert len(module_nodes) + len(folded) == 1


class TestStructuralGraph:
    def test_failed_trace_falls_back_to_module_nodes(self, metadata, caplog):
        source = NET_SOURCE.replace('torch.relu((self.conv).forward(x, ))', 'torch.frobnicate(x)')

        graph = _graph(metadata, conv_net_entries(net_source=source))

        assert "Unknown symbol 'torch.frobnicate' in 'net.pt'." in caplog.text
        assert graph.inputs == [] and graph.outputs == []
        assert len(graph.nodes) == 1
        node = graph.nodes[0]
        assert (node.operator, node.name) == ('Module', 'conv')
        assert [p.name for p in node.inputs] == ['weight', 'bias']
        assert all(a.id == '' for p in node.inputs for a in p.arguments)
        assert node.outputs == []

    def test_trace_failing_after_consuming_parameters_leaves_no_ids(self, metadata, caplog):
        source = NET_SOURCE.replace('torch.relu(', 'torch.frobnicate(')

        graph = _graph(metadata, conv_net_entries(net_source=source))

        assert "Unknown symbol 'torch.frobnicate'" in caplog.text
        node = graph.nodes[0]
        assert (node.operator, node.name) == ('Module', 'conv')
        assert node.outputs == []

    def test_tracing_disabled_by_config(self, metadata):
        graph = _graph(metadata, conv_net_entries(), LoaderConfig(trace=False))

        assert [(n.operator, n.name) for n in graph.nodes] == [('Module', 'conv')]

    def test_display_limit_from_config(self, metadata):
        graph = _graph(metadata, conv_net_entries(), LoaderConfig(trace=False, display_limit=0))

        weight = graph.nodes[0].inputs[0].arguments[0].initializer
        assert weight.display_limit == 0
        assert str(weight).splitlines()[-2].strip() == '...'
