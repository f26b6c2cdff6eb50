import pytest

from tsgraph.errors import ScriptRuntimeError, SourceNotFound, UnknownSymbol, UnsupportedExpression
from tsgraph.runtime.objects import Namespace, TensorObject, TypeRef, is_module_class
from tsgraph.script.interpreter import Function, Interpreter
from tsgraph.script.parser import parse_source


class SpyLoader:
    """Source provider over a dict that records every file it was asked for."""

    def __init__(self, files):
        self.files = files
        self.requests = []

    def __call__(self, file):
        self.requests.append(file)
        if file not in self.files:
            raise SourceNotFound(f"Python source '{file}' not found.")
        return parse_source(self.files[file], file)


def _interpreter(files, constants=None):
    loader = SpyLoader(files)
    return Interpreter(loader, (lambda: constants) if constants is not None else None), loader


class TestPackages:
    def test_package_loaded_once(self):
        """Two references to one dotted name parse its source exactly once."""
        # given
        interpreter, loader = _interpreter({'code/__torch__/a.py': 'def f(x):\n  return x\n'})

        # when
        first = interpreter.resolve('__torch__.a.f')
        second = interpreter.resolve('__torch__.a.f')

        # then
        assert first is second
        assert isinstance(first, Function)
        assert loader.requests == ['code/__torch__/a.py']

    def test_package_globals(self):
        interpreter, _ = _interpreter({'code/__torch__/m.py': 'class C(Module):\n  pass\n'})

        namespace = interpreter.package('__torch__.m')

        assert isinstance(namespace, Namespace)
        assert namespace.members['__name__'] == '__torch__.m'
        cls = namespace.members['C']
        assert is_module_class(cls)
        assert (cls.type_module, cls.type_name) == ('__torch__.m', 'C')

    def test_sub_package_does_not_shadow_torch(self):
        interpreter, _ = _interpreter({
            'code/__torch__.py': 'def f(x):\n  return torch.relu(x)\n',
            'code/__torch__/torch/nn.py': 'def g(x):\n  return x\n',
        })
        interpreter.package('__torch__.torch.nn')

        result = interpreter.invoke('__torch__.f', [interpreter.registry.placeholder('x')])

        assert isinstance(result, TensorObject)
        assert [n.operator for n in interpreter.registry.nodes] == ['relu']

    def test_qualified_reference_while_package_loads(self):
        interpreter, loader = _interpreter({'code/__torch__.py':
                                            'class Block(Module):\n'
                                            '  pass\n'
                                            'class Net(Module):\n'
                                            '  __annotations__["block"] = __torch__.Block\n'})

        net = interpreter.resolve('__torch__.Net')

        block = interpreter.resolve('__torch__.Block')
        assert net.members['__annotations__'] == {'block': block}
        assert loader.requests == ['code/__torch__.py']

    def test_missing_source(self):
        interpreter, _ = _interpreter({})
        with pytest.raises(SourceNotFound):
            interpreter.package('__torch__.nothing')


class TestEvaluation:
    def _run(self, body, constants=None):
        interpreter, _ = _interpreter({'code/__torch__/t.py': body}, constants)
        return interpreter, interpreter.resolve('__torch__.t.f')

    def test_if_takes_branch(self):
        interpreter, f = self._run(
            'def f(x):\n'
            '  if torch.eq(x, 1):\n'
            '    y = "one"\n'
            '  else:\n'
            '    y = "other"\n'
            '  return y\n')
        assert f(1) == 'one'
        assert f(2) == 'other'

    def test_non_boolean_condition(self):
        _, f = self._run('def f(x):\n  if x:\n    pass\n  return x\n')
        with pytest.raises(UnsupportedExpression, match='Unknown condition'):
            f(1)

    def test_tuple_assignment_and_subscript(self):
        _, f = self._run('def f(pair):\n  a, b = pair\n  return [b, a][0]\n')
        assert f((1, 2)) == 2

    def test_type_names_and_constants(self):
        _, f = self._run('def f():\n  return (List[int], Tensor, CONSTANTS.c1)\n', constants=['a', 'b'])
        assert f() == (TypeRef('List[int]'), TypeRef('Tensor'), 'b')

    def test_unknown_identifier(self):
        _, f = self._run('def f():\n  return nothing_here\n')
        with pytest.raises(UnknownSymbol):
            f()

    def test_raise_exception(self):
        _, f = self._run('def f():\n  ops.prim.RaiseException("boom")\n  return None\n')
        with pytest.raises(ScriptRuntimeError, match='boom'):
            f()

    def test_closure_sees_package_globals(self):
        _, f = self._run('K = 3\ndef f():\n  return K\n')
        assert f() == 3

    def test_class_instance_init(self):
        interpreter, _ = _interpreter({'code/__torch__/t.py':
                                       'class P(Module):\n'
                                       '  def __init__(self, v):\n'
                                       '    self.v = v\n'
                                       'def f():\n'
                                       '  return P(5)\n'})
        obj = interpreter.invoke('__torch__.t.f')
        assert obj.fields['v'] == 5

    def test_unknown_torch_call_uses_stub(self):
        _, f = self._run('def f(x):\n  return torch.size(x)\n')
        assert f(None) == 0


class TestTrace:
    def test_trace_records_nodes(self):
        interpreter, _ = _interpreter({'code/__torch__.py':
                                       'class M(Module):\n'
                                       '  def forward(self, x):\n'
                                       '    y = torch.flatten(x, start_dim=1)\n'
                                       '    return torch.relu(y)\n'})
        cls = interpreter.resolve('__torch__.M')
        obj = cls.__new__(cls)

        result = interpreter.trace(obj, cls.members['forward'])

        assert result.inputs == ['x']
        flatten, relu = result.nodes
        assert flatten.inputs[0][0].id == 'x'
        assert flatten.attributes == [('start_dim', 1)]
        assert relu.inputs[0][0].id == flatten.outputs[0]
        assert result.outputs == relu.outputs

    def test_trace_requires_function(self):
        interpreter, _ = _interpreter({})
        with pytest.raises(UnknownSymbol):
            interpreter.trace(None, None)
