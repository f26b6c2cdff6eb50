import json
from pathlib import Path
import pytest

from archive_factory import conv_net_entries
from tsgraph.config import LoaderConfig
from tsgraph.ir.importer import open_model
from tsgraph.utils.reporting import generate_report, generate_report_json


@pytest.fixture
def model():
    return open_model('net.pt', conv_net_entries())


def test_generate_report_json(model):
    config = LoaderConfig(model='net.pt')

    report = generate_report_json(model, config)

    assert report['format'] == 'TorchScript v3'
    assert [n['operator'] for n in report['nodes']] == ['_convolution', 'relu']
    assert report['operator_counts'] == {'_convolution': 1, 'relu': 1}
    assert report['initializer_count'] == 2
    assert report['inputs'][0]['name'] == 'x'
    weight = report['nodes'][0]['inputs'][1]['arguments'][0]
    assert weight == {'id': weight['id'], 'type': 'float32[2,1,1,1]', 'initializer': True, 'state': None}
    assert report['config']['model'] == 'net.pt'
    json.dumps(report)


def test_generate_report_writes_artifacts(model, tmp_path: Path, capsys):
    config = LoaderConfig(model='net.pt', report_dir=str(tmp_path / 'report'))

    generate_report(model, config)

    output_dir = tmp_path / 'report'
    assert (output_dir / 'report.json').exists()
    assert (output_dir / 'report.html').exists()
    data = json.loads((output_dir / 'report.json').read_text())
    assert data['operator_counts']['relu'] == 1
    out = capsys.readouterr().out
    assert 'Total Nodes: 2' in out
    assert 'Format: TorchScript v3' in out
