import json

from predictor import cli, UpstreamError

from conftest import FakeChatClient


def install_client(monkeypatch, answers):
    chat = FakeChatClient(answers)
    created = {}

    def factory(api_base, model, timeout):
        created.update(api_base=api_base, model=model, timeout=timeout)
        return chat

    monkeypatch.setattr(cli, 'LlamaClient', factory)
    return chat, created


def test_prints_dataset_as_json(monkeypatch, capsys):
    chat, created = install_client(monkeypatch, ['1, 2, 3, 4', 'Bullish'])

    exit_code = cli.main([
        '--api-base', 'http://gateway.test/api/llama', '--tokens', 'aave', '--seed', '3', '--timeout', '12',
    ])

    assert exit_code == 0
    assert created == {'api_base': 'http://gateway.test/api/llama', 'model': 'llama', 'timeout': 12.0}
    output = json.loads(capsys.readouterr().out)
    assert output['aave']['predictions'] == [1.0, 2.0, 3.0, 4.0]
    assert output['aave']['sentiment'] == 'Bullish'
    assert chat.closed


def test_upstream_failures_still_produce_a_dataset(monkeypatch, capsys):
    install_client(monkeypatch, [UpstreamError('down'), UpstreamError('down')])

    exit_code = cli.main(['--tokens', 'maker', '--seed', '7'])

    assert exit_code == 0
    record = json.loads(capsys.readouterr().out)['maker']
    assert len(record['predictions']) == 4


def test_aborted_cycle_exits_non_zero(monkeypatch, capsys):
    install_client(monkeypatch, [RuntimeError('bug')])

    assert cli.main(['--tokens', 'aave']) == 1
    assert capsys.readouterr().out == ''
