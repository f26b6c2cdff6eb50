import pytest

from tsgraph.errors import UnknownSymbol, UnsupportedExpression
from tsgraph.runtime.builtins import PackedParams, Registry, TRACED_OPERATORS
from tsgraph.runtime.objects import StorageType, TensorObject, TypeRef
from tsgraph.script.scope import Scope


@pytest.fixture
def registry():
    return Registry(Scope())


class TestTracedOperators:
    def test_all_operators_registered(self, registry):
        for name in TRACED_OPERATORS:
            assert callable(registry.lookup(name))

    def test_leading_tensors_become_inputs(self, registry):
        # given
        x = registry.placeholder('x')
        weight = TensorObject()
        bias = TensorObject()

        # when
        out = registry.lookup('torch._convolution')(x, weight, bias, [1, 1], [0, 0])

        # then
        node = registry.nodes[-1]
        assert node.operator == '_convolution'
        assert node.qualified_name == 'torch._convolution'
        assert [[a.id for a in arguments] for arguments in node.inputs] == [['x'], [weight.identifier], [bias.identifier]]
        assert weight.identifier is not None and weight.identifier != bias.identifier
        assert node.outputs == [out.identifier]
        assert node.attributes == []

    def test_tensor_list_input(self, registry):
        a, b = registry.placeholder('a'), registry.placeholder('b')

        registry.lookup('torch.cat')([a, b], 1)

        node = registry.nodes[-1]
        assert len(node.inputs) == 1
        assert [arg.id for arg in node.inputs[0]] == ['a', 'b']

    def test_keywords_become_attributes(self, registry):
        registry.lookup('torch.flatten')(registry.placeholder('x'), start_dim=1)
        assert registry.nodes[-1].attributes == [('start_dim', 1)]

    def test_reset_trace(self, registry):
        registry.lookup('torch.relu')(registry.placeholder('x'))
        registry.reset_trace()
        assert registry.nodes == []

    def test_rollback_trace_clears_assigned_ids(self, registry):
        weight = TensorObject()
        named = registry.placeholder('x')
        registry.lookup('torch.add')(named, weight)

        registry.rollback_trace()

        assert registry.nodes == []
        assert weight.outputs == []
        assert named.outputs == ['x']


class TestBuiltins:
    def test_storage_constructor(self, registry):
        storage_type = registry.lookup('torch.FloatStorage')
        assert isinstance(storage_type, StorageType)
        storage = storage_type(4)
        assert (storage.dtype, storage.itemsize, storage.size) == ('float32', 4, 4)

    def test_rebuild_tensor(self, registry):
        storage = registry.lookup('torch.LongStorage')(2)

        tensor = registry.lookup('torch._utils._rebuild_tensor_v2')(storage, 0, (2,), (1,), False, None)

        assert tensor.storage is storage
        assert tensor.size == [2]
        assert tensor.type_name == 'LongTensor'
        assert tensor.dtype == 'int64'

    def test_rebuild_parameter_unwraps(self, registry):
        tensor = TensorObject()
        assert registry.lookup('torch._utils._rebuild_parameter')(tensor, True, None) is tensor

    def test_comparisons(self, registry):
        assert registry.lookup('torch.__is__')(None, None) is True
        assert registry.lookup('torch.__isnot__')(1, None) is True
        assert registry.lookup('torch.gt')(2, 1) is True
        assert registry.lookup('torch.lt')(2, 1) is False
        assert registry.lookup('torch.ne')('a', 'b') is True
        with pytest.raises(UnsupportedExpression):
            registry.lookup('torch.eq')(True, 1)
        with pytest.raises(UnsupportedExpression):
            registry.lookup('torch.__not__')(0)

    def test_uninitialized_tensor_is_placeholder(self, registry):
        value = registry.lookup('uninitialized')(TypeRef('Tensor'))
        assert isinstance(value, TensorObject)
        assert value.identifier is not None
        assert registry.lookup('uninitialized')(TypeRef('int')) is None

    def test_prepack(self, registry):
        packed = registry.lookup('ops.quantized.conv_prepack')(1, 2)
        assert packed == PackedParams('conv_prepack', (1, 2))

    def test_stubs(self, registry):
        assert registry.stub('torch.conv2d').size == [0, 0, 0, 0]
        assert len(registry.stub('torch.max_pool2d_with_indices')) == 2
        assert registry.stub('torch.list_with_default') == [0]
        with pytest.raises(UnknownSymbol, match="'torch.unknown_op'"):
            registry.stub('torch.unknown_op')

    def test_identify_is_stable(self, registry):
        tensor = TensorObject()
        first = registry.identify(tensor)
        assert registry.identify(tensor) == first
