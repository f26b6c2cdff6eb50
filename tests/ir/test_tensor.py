import struct

import numpy as np
import pytest

from tsgraph.ir.tensor import NUMPY_DTYPES, Tensor


def _floats(*values):
    return struct.pack(f'<{len(values)}f', *values)


class TestTensorDecode:
    def test_row_major_order(self):
        """Leaves come out in row-major order and their count equals the product of dims."""
        # given
        tensor = Tensor('t', 'float32', [2, 3], _floats(0, 1, 2, 3, 4, 5))

        # when
        value = tensor.value

        # then
        assert value == [[0.0, 1.0, 2.0], [3.0, 4.0, 5.0]]
        assert sum(len(row) for row in value) == tensor.element_count == 6

    @pytest.mark.parametrize("data_type", sorted(NUMPY_DTYPES))
    def test_every_dtype_decodes_row_major(self, data_type):
        data = np.arange(6, dtype=NUMPY_DTYPES[data_type]).tobytes()
        tensor = Tensor('t', data_type, [3, 2], data)

        value = tensor.value

        assert tensor.state is None
        assert value == [[0, 1], [2, 3], [4, 5]]
        assert [leaf for row in value for leaf in row] == list(range(tensor.element_count))

    def test_scalar_shape_is_unwrapped(self):
        tensor = Tensor('s', 'int32', [], struct.pack('<i', -7))
        assert tensor.value == -7

    def test_int64_is_exact(self):
        big = 2 ** 62 + 1
        tensor = Tensor('i', 'int64', [1], struct.pack('<q', big))
        assert tensor.value == [big]

    def test_storage_offset(self):
        tensor = Tensor('o', 'float32', [2], _floats(9, 1, 2), offset=1)
        assert tensor.value == [1.0, 2.0]

    def test_display_limit_truncates(self):
        """Decoding stops with '...' once more than `limit` elements were read."""
        tensor = Tensor('t', 'float32', [5], _floats(1, 2, 3, 4, 5), display_limit=2)
        assert tensor.decode(2) == [1.0, 2.0, 3.0, '...']
        assert '...' in str(tensor)

    def test_str_uses_json_like_layout(self):
        tensor = Tensor('t', 'float32', [2], _floats(float('nan'), float('-inf')))
        assert str(tensor) == '[\n    NaN,\n    -Infinity\n]'


class TestTensorState:
    @pytest.mark.parametrize("data_type, dimensions, data, state", [
        (None, [1], b'\x00' * 4, 'Tensor has no data type.'),
        ('qint8', [1], b'\x00', "Tensor data type 'qint8' is not supported."),
        ('float32', None, b'\x00' * 4, 'Tensor has no dimensions.'),
        ('float32', [1], None, 'Tensor data is empty.'),
        ('float32', [2], b'\x00' * 4, 'Tensor data is too short.'),
    ])
    def test_soft_failures(self, data_type, dimensions, data, state):
        tensor = Tensor('t', data_type, dimensions, data)
        assert tensor.state == state
        assert tensor.value is None
        assert str(tensor) == ''

    def test_type_string(self):
        tensor = Tensor('t', 'float16', [2, 2], b'\x00' * 8)
        assert str(tensor.type) == 'float16[2,2]'
        assert tensor.state is None
